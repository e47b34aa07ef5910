"""
Confirmation gap detection.

Confirmation transactions on L1 each cover a contiguous run of rollup blocks,
and together they should tile the confirmed part of the rollup without holes.
A hole means some confirmation transaction has not been indexed. The stages
below find the most recent hole so that a re-indexer only has to scan the L1
blocks between the two confirmations bounding it.

Stages, each consuming the previous stage's output:
  1. (rollup block number, confirm id) pairs of confirmed blocks
  2. group_confirmed_blocks: one ConfirmationRange per confirm id
  3. pair_with_previous: ranges ordered by min block, each paired with the
     range right before it
  4. latest_discontinuity: the boundary with the largest min block whose
     range does not start right after the previous range ends

RollupReader.confirmation_ranges runs stages 1 and 2 as a single GROUP BY in
the store. group_confirmed_blocks is the in-memory equivalent of that query,
for callers that already hold the pairs.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .types import ConfirmationRange


@dataclass(frozen=True)
class RangeBoundary:
    current: ConfirmationRange
    previous: Optional[ConfirmationRange]


def group_confirmed_blocks(pairs: Iterable[Tuple[int, int]]) -> List[ConfirmationRange]:
    """
    Stage 2: collapse (block number, confirm id) pairs into per-transaction ranges.

    Same result as the GROUP BY in RollupReader.confirmation_ranges.
    """
    bounds: Dict[int, Tuple[int, int]] = {}
    for block_number, confirm_id in pairs:
        if confirm_id in bounds:
            low, high = bounds[confirm_id]
            bounds[confirm_id] = (min(low, block_number), max(high, block_number))
        else:
            bounds[confirm_id] = (block_number, block_number)
    return [
        ConfirmationRange(confirm_id=confirm_id, min_block=low, max_block=high)
        for confirm_id, (low, high) in bounds.items()
    ]


def pair_with_previous(ranges: Iterable[ConfirmationRange]) -> Iterator[RangeBoundary]:
    """Stage 3: order by min block and attach the immediately preceding range."""
    ordered = sorted(ranges, key=lambda r: (r.min_block, r.max_block, r.confirm_id))
    previous = None
    for current in ordered:
        yield RangeBoundary(current=current, previous=previous)
        previous = current


def is_discontinuity(boundary: RangeBoundary, first_rollup_block: Optional[int] = None) -> bool:
    """
    True when ``boundary.current`` does not start right after ``boundary.previous``.

    The first range has nothing before it. It only counts as a discontinuity
    when the caller knows where confirmations must begin (``first_rollup_block``)
    and the range starts later than that.
    """
    if boundary.previous is None:
        return first_rollup_block is not None and boundary.current.min_block > first_rollup_block
    return boundary.current.min_block - 1 != boundary.previous.max_block


def latest_discontinuity(
    ranges: Iterable[ConfirmationRange],
    first_rollup_block: Optional[int] = None,
) -> Optional[RangeBoundary]:
    """Stage 4: the discontinuity with the largest min block, or None."""
    latest = None
    for boundary in pair_with_previous(ranges):
        if is_discontinuity(boundary, first_rollup_block):
            latest = boundary
    return latest


def missing_block_bounds(boundary: RangeBoundary,
                         first_rollup_block: Optional[int] = None) -> Optional[Tuple[int, int]]:
    """
    Rollup blocks lying in the hole in front of ``boundary.current``.

    None when nothing is missing, which is the case for overlapping ranges
    (the previous range ends at or after the current range starts).
    """
    current = boundary.current
    if boundary.previous is None:
        first = first_rollup_block if first_rollup_block is not None else current.min_block
    else:
        first = boundary.previous.max_block + 1
    if first >= current.min_block:
        return None
    return first, current.min_block - 1
