"""Elapsed-time code parsing.

WHY: Transcripts embed absolute elapsed time as text ("01:02:03",
"02:05", "45"). The scheduler needs integer second offsets to rebuild
the original cadence.

HOW: Split on ':' and weight the parts by position.

RULES:
- 3 parts → H*3600 + M*60 + S
- 2 parts → M*60 + S
- 1 part  → S
- Any other shape → 0
- A part counts only if it is an optionally signed run of ASCII digits
  within the 32-bit signed range; anything else ("1_000", non-ASCII
  digits, "99999999999") counts as 0
- This function never raises, so a malformed timestamp delivers its
  record with zero wait
"""

from __future__ import annotations

import re

_WEIGHTS = {
    3: (3600, 60, 1),
    2: (60, 1),
    1: (1,),
}

_INT_PART = re.compile(r"[+-]?[0-9]+", re.ASCII)
_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


def _to_int(part: str) -> int:
    part = part.strip()
    if not _INT_PART.fullmatch(part):
        return 0
    value = int(part)
    if value < _INT32_MIN or value > _INT32_MAX:
        return 0
    return value


def parse_timecode(text: str) -> int:
    """Convert an elapsed-time code into a whole number of seconds.

    Args:
        text: Time code such as "01:02:03", "02:05" or "45".

    Returns:
        Offset in seconds from the start of the transcript. Malformed
        input degrades to 0.
    """
    parts = text.split(":")
    weights = _WEIGHTS.get(len(parts))
    if weights is None:
        return 0
    return sum(w * _to_int(p) for w, p in zip(weights, parts))
