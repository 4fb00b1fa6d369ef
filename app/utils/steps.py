"""Read-time parsing of free-text steps and acceptance criteria.

Steps and expected outcomes are stored as plain newline-delimited text on the
test case (and in every version snapshot). The UI wants structured lists, so
the API derives them on read:

    parse_steps("1. Open login page\\n2) Submit form")
    -> [{"num": 1, "text": "Open login page"}, {"num": 2, "text": "Submit form"}]
"""

from __future__ import annotations

import re

_STEP_PREFIX = re.compile(r"^\d+[.)]\s*")
_BULLET_PREFIX = re.compile(r"^[-*•□☐]\s*")


def _lines(raw: str | None) -> list[str]:
    if not raw or not raw.strip():
        return []
    return [line.strip() for line in raw.split("\n") if line.strip()]


def parse_steps(raw: str | None) -> list[dict]:
    """Split numbered steps, renumbering from 1 and dropping "1." / "1)" prefixes."""
    return [
        {"num": i, "text": _STEP_PREFIX.sub("", line)}
        for i, line in enumerate(_lines(raw), start=1)
    ]


def parse_criteria(raw: str | None) -> list[str]:
    """Split acceptance criteria, dropping bullet and checkbox prefixes."""
    return [_BULLET_PREFIX.sub("", line) for line in _lines(raw)]
