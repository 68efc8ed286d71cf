"""Query text resolution for ad-hoc queries.

The SQL for ``cosmos-tool query`` comes from, in order of precedence:
1. The positional SQL argument
2. A file given with --file
3. stdin, when it is not a terminal
"""

from __future__ import annotations

import sys
from pathlib import Path

from cosmos_tool.core.exceptions import InputError


def resolve_query_source(sql: str | None, file_path: str | None) -> str:
    """Return the query text; raise InputError when there is none."""
    if sql is not None:
        text = sql
    elif file_path is not None:
        p = Path(file_path)
        if not p.is_file():
            msg = (
                f"Query file not found: {file_path}\n"
                "Pass the query as an argument or pipe it via stdin."
            )
            raise InputError(msg)
        text = p.read_text()
    elif not sys.stdin.isatty():
        text = sys.stdin.read()
    else:
        msg = "No query provided. Pass SQL as an argument, use --file, or pipe to stdin."
        raise InputError(msg)

    if not text.strip():
        msg = "Query is empty"
        raise InputError(msg)
    return text.strip()
