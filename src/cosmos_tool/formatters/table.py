"""Rich table formatter for document output."""

from __future__ import annotations

import shutil
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from cosmos_tool.formatters.base import document_columns, document_row, registry

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

_NO_RESULTS = "No results"


def _truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: width - 1] + "…"


class TableFormatter:
    def __init__(self, width: int = 40, no_header: bool = False) -> None:
        self.width = width
        self.no_header = no_header

    def format(self, documents: Sequence[Any]) -> Iterator[str]:
        if not documents:
            yield _NO_RESULTS
            return

        columns = document_columns(documents)
        table = Table(show_edge=True, pad_edge=True, show_header=not self.no_header)
        for col in columns:
            table.add_column(col, no_wrap=True)

        for doc in documents:
            table.add_row(
                *(_truncate(cell, self.width) for cell in document_row(doc, columns))
            )

        buf = StringIO()
        term_width = shutil.get_terminal_size((120, 24)).columns
        console = Console(file=buf, force_terminal=True, width=term_width)
        console.print(table)
        yield buf.getvalue().rstrip("\n")


registry.register("table", TableFormatter)
