"""CSV formatter for document output (RFC 4180 compliant)."""

from __future__ import annotations

import csv
from io import StringIO
from typing import TYPE_CHECKING, Any

from cosmos_tool.formatters.base import document_columns, document_row, registry

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


def _write_row(values: list[str]) -> str:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow(values)
    return buf.getvalue().rstrip("\r\n")


class CSVFormatter:
    def __init__(self, no_header: bool = False) -> None:
        self.no_header = no_header

    def format(self, documents: Sequence[Any]) -> Iterator[str]:
        columns = document_columns(documents)
        if not columns:
            return

        if not self.no_header:
            yield _write_row(columns)

        for doc in documents:
            yield _write_row(document_row(doc, columns))


registry.register("csv", CSVFormatter)
