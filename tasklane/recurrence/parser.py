"""Trailing recurrence phrase parser.

"water plants every day" -> (DAILY, "water plants"). Only a phrase at the very
end of the text counts, and it must follow some leading text. The check order
matters: "every other week" has to win over "every week".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from tasklane.models.recurrence import RecurrenceKind


@dataclass(frozen=True)
class ParsedRecurrence:
    kind: RecurrenceKind
    text: str


_PHRASES: List[Tuple[re.Pattern, RecurrenceKind]] = [
    (re.compile(r"\s+every\s+day\s*$", re.I), RecurrenceKind.DAILY),
    (re.compile(r"\s+every\s+other\s+week\s*$", re.I), RecurrenceKind.BIWEEKLY),
    (re.compile(r"\s+every\s+week\s*$", re.I), RecurrenceKind.WEEKLY),
    (re.compile(r"\s+every\s+month\s*$", re.I), RecurrenceKind.MONTHLY),
    (re.compile(r"\s+every\s+year\s*$", re.I), RecurrenceKind.YEARLY),
]


def parse_recurrence(text: Optional[str]) -> Optional[ParsedRecurrence]:
    """Split a trailing recurrence phrase off `text`, or return None for a regular task."""
    if text is None:
        return None
    stripped = text.strip()
    if not stripped:
        return None

    for pattern, kind in _PHRASES:
        match = pattern.search(stripped)
        if match:
            remainder = stripped[: match.start()].strip()
            if not remainder:
                return None
            return ParsedRecurrence(kind=kind, text=remainder)
    return None
