"""
Inline comment offset reconciliation.

Models report character offsets inconsistently (they count tokens or words), so
any offsets they propose are corrected against the real answer text. When the
model also returns the literal quote it is annotating, the quote is ground truth
and wins over the numeric offsets.
"""

import math
from typing import Any, Mapping, Optional, Tuple

from examgrader.config import logger

DEFAULT_QUOTE_TOLERANCE = 300


def _coerce_index(value: Any) -> int:
    """Non-numeric, missing or non-finite values become 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


def find_best_quote_index(text: str, quote: str, suggested_start: int) -> Optional[int]:
    """
    Start index of the occurrence of `quote` closest to `suggested_start`.
    The first occurrence wins ties. None when the quote does not occur.
    """
    if not quote:
        return None

    best_index = None
    best_distance = None
    position = text.find(quote)
    while position != -1:
        distance = abs(position - suggested_start)
        if best_distance is None or distance < best_distance:
            best_index = position
            best_distance = distance
        # Overlapping occurrences count too
        position = text.find(quote, position + 1)
    return best_index


def reconcile_offsets(
    answer_text: str,
    proposed: Mapping[str, Any],
    tolerance: int = DEFAULT_QUOTE_TOLERANCE,
) -> Optional[Tuple[int, int]]:
    """
    Turn a proposed {start_index, end_index, quote} into offsets that are a valid
    range of `answer_text`, or None when no non-empty range remains.
    """
    text_length = len(answer_text)
    start = _clamp(_coerce_index(proposed.get("start_index")), text_length)
    end = _clamp(_coerce_index(proposed.get("end_index")), text_length)

    quote = proposed.get("quote")
    if isinstance(quote, str) and quote:
        match = find_best_quote_index(answer_text, quote, start)
        if match is not None:
            if abs(match - start) > tolerance:
                logger.warning(
                    f"Inline comment quote found {abs(match - start)} chars away from "
                    f"proposed offset {start}; using quote position {match}"
                )
            start = match
            end = match + len(quote)

    if end <= start:
        return None
    return start, end
