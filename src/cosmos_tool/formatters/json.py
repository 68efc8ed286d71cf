"""JSON formatter for document output."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from cosmos_tool.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator


class JSONFormatter:
    def __init__(self, compact: bool = False) -> None:
        self.compact = compact

    def format(self, documents: Any) -> Iterator[str]:
        # Pipelines pass a {step: documents} mapping; it renders as one object.
        if self.compact:
            yield json.dumps(documents, default=str, ensure_ascii=False)
        else:
            yield json.dumps(documents, indent=2, default=str, ensure_ascii=False)


registry.register("json", JSONFormatter)
