"""Formatter protocol and registry for output formatting."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

# Column used for documents that are not JSON objects (e.g. SELECT VALUE c.id).
# The "$" prefix keeps it apart from a document key named "value".
VALUE_COLUMN = "$value"


@runtime_checkable
class Formatter(Protocol):
    """Protocol for output formatters.

    Each formatter transforms a sequence of documents into lines of
    formatted text.
    """

    def format(self, documents: Sequence[Any]) -> Iterator[str]:
        """Transform documents into formatted output lines."""
        ...


class FormatterRegistry:
    """Registry for looking up formatters by name."""

    def __init__(self) -> None:
        self._formatters: dict[str, type[Formatter]] = {}

    def register(self, name: str, formatter_class: type[Formatter]) -> None:
        self._formatters[name] = formatter_class

    def get(self, name: str, **kwargs: object) -> Formatter:
        """Return a formatter instance by name.

        Raises KeyError if the format name is not registered.
        """
        if name not in self._formatters:
            available = ", ".join(sorted(self._formatters))
            msg = f"Unknown format {name!r}. Available: {available}"
            raise KeyError(msg)
        return self._formatters[name](**kwargs)

    @property
    def available(self) -> list[str]:
        return sorted(self._formatters)


def document_columns(documents: Sequence[Any]) -> list[str]:
    """Ordered union of top-level keys, in first-seen order."""
    columns: dict[str, None] = {}
    for doc in documents:
        if isinstance(doc, dict):
            columns.update(dict.fromkeys(doc))
        else:
            columns[VALUE_COLUMN] = None
    return list(columns)


def document_row(doc: Any, columns: Sequence[str]) -> list[str]:
    if not isinstance(doc, dict):
        return [cell_text(doc) if col == VALUE_COLUMN else "" for col in columns]
    return [cell_text(doc.get(col)) for col in columns]


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


# Global registry instance populated by formatter modules.
registry = FormatterRegistry()
