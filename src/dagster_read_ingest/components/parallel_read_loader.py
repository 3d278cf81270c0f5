"""
Parallel Read Loader

Loads reads from a file or a directory of shards as a lazy, partitioned
ReadsDataset, in either the row-oriented alignment format or the columnar
format.
"""

import logging
from typing import Optional, Sequence

from .errors import ReadsIOError, UserError
from .header import resolve_header
from .read_adapter import Broadcast, ReadFormat
from .reads_dataset import (
    AdaptColumnarRecords,
    FilterAndAdaptAlignments,
    ReadPartition,
    ReadsDataset,
)
from .splits import plan_splits
from .types import GenomicInterval, ReadsHeader, all_intervals_for_reference

logger = logging.getLogger(__name__)

# Reads take more space in memory than on disk, so splits are kept small.
DEFAULT_MAX_SPLIT_SIZE = 4 * 1024 * 1024


class ParallelReadLoader:
    """
    Loads reads in split-bounded partitions.

    Every split covers at most ``max_split_size`` on-disk bytes. Setup errors
    (header resolution, listing, split planning) raise immediately; a malformed
    record only drops that record.
    """

    def __init__(self, max_split_size: int = DEFAULT_MAX_SPLIT_SIZE):
        if max_split_size <= 0:
            raise ValueError(f"max_split_size must be positive, got {max_split_size}")
        self.max_split_size = max_split_size

    def get_header(self, path: str) -> ReadsHeader:
        return resolve_header(path)

    def _plan(self, path: str, record_format: ReadFormat, stage) -> ReadsDataset:
        try:
            splits = plan_splits(path, record_format, self.max_split_size)
        except UserError:
            raise
        except (OSError, ValueError) as e:
            raise ReadsIOError(f"unable to plan splits for {path}: {e}") from e
        return ReadsDataset([ReadPartition(split.index, split, stage) for split in splits])

    def load_filtered(
        self, path: str, intervals: Optional[Sequence[GenomicInterval]]
    ) -> ReadsDataset:
        """
        Load alignment reads overlapping any of ``intervals``.

        No intervals means no filtering. Records that fail to decode are
        dropped.
        """
        stage = FilterAndAdaptAlignments(tuple(intervals) if intervals else None)
        dataset = self._plan(path, ReadFormat.ALIGNMENT, stage)
        logger.info(
            f"Loading alignment reads from {path}: {dataset.num_partitions} partitions, "
            f"{len(intervals) if intervals else 'no'} intervals"
        )
        return dataset

    def load_all(self, path: str) -> ReadsDataset:
        """
        Load every alignment read placed on a reference in the header.

        Unmapped reads without a placement coordinate are excluded.
        """
        header = resolve_header(path)
        intervals = all_intervals_for_reference(header.sequence_dictionary)
        return self.load_filtered(path, intervals)

    def load_columnar(self, path: str, header: Optional[ReadsHeader] = None) -> ReadsDataset:
        """
        Load columnar reads, sharing ``header`` read-only with every partition.

        Columnar rows are not filtered by interval.
        """
        stage = AdaptColumnarRecords(Broadcast(header))
        dataset = self._plan(path, ReadFormat.COLUMNAR, stage)
        logger.info(
            f"Loading columnar reads from {path}: {dataset.num_partitions} partitions, "
            f"header {'broadcast' if header is not None else 'absent'}"
        )
        return dataset
