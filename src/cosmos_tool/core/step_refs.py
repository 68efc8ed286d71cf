"""Cross-step references in multi-step query SQL.

A step's SQL may use ``@<step>.<field>`` to read a field from the first
document produced by an earlier step. Plain ``@param`` tokens, and dotted
tokens whose head is not a known step name, are ordinary parameters and
are left alone.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

# The lookbehind keeps e-mail-like text ("user@customer.id") from matching;
# greedy \w+ on both sides means "@customerName.id" never yields "customer".
_STEP_REF_RE = re.compile(r"(?<![\w@])@(\w+)\.(\w+)")


def find_step_references(
    sql: str, known_step_names: Iterable[str]
) -> set[tuple[str, str]]:
    """Return every ``(step, field)`` pair referenced in ``sql``."""
    known = set(known_step_names)
    return {
        (match.group(1), match.group(2))
        for match in _STEP_REF_RE.finditer(sql)
        if match.group(1) in known
    }


def referenced_steps(sql: str, known_step_names: Iterable[str]) -> set[str]:
    """Names of the steps ``sql`` depends on."""
    return {step for step, _ in find_step_references(sql, known_step_names)}
