"""
Per-record genomic interval filtering.
"""

from typing import Optional, Sequence

import pysam

from .types import GenomicInterval

# pysam reports a missing POS as -1 (SAM POS 0).
NO_ALIGNMENT_START = -1


def overlaps(
    record: pysam.AlignedSegment, intervals: Optional[Sequence[GenomicInterval]]
) -> bool:
    """
    Test whether an alignment record overlaps any interval in a collection.

    No intervals means no filtering. An unmapped read that still carries a
    placement coordinate is tested against the first interval only, following
    htslib's region queries, which return an unmapped read when its sort
    coordinate falls inside the query region.
    """
    if not intervals:
        return True

    for interval in intervals:
        if record.is_unmapped and record.reference_start != NO_ALIGNMENT_START:
            return interval.contains(record.reference_start + 1)

        # reference_end is exclusive 0-based, i.e. inclusive 1-based.
        end = record.reference_end
        if end is None:
            end = record.reference_start
        if interval.overlaps(record.reference_name, record.reference_start + 1, end):
            return True

    return False
