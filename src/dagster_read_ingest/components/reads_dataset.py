"""
Lazy, partitioned sequences of normalized reads.

A ReadsDataset is a description of a pipeline: a list of partitions (one per
split) and the per-record stage each partition applies. Nothing is decoded
until a partition is iterated.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from .errors import MalformedRecordError
from .overlap import overlaps
from .read_adapter import Broadcast, NormalizedRead, adapt_alignment_record, adapt_columnar_record
from .splits import FileSplit, read_split
from .types import GenomicInterval

logger = logging.getLogger(__name__)


def resolve_n_jobs(n_jobs: int) -> int:
    """Worker processes to use when collecting partitions; -1 means one per CPU."""
    if n_jobs >= 1:
        return n_jobs
    return (os.cpu_count() or 1) if n_jobs < 0 else 1


@dataclass(frozen=True)
class FilterAndAdaptAlignments:
    """Keep alignment records overlapping the intervals, adapted to reads."""

    intervals: Optional[Tuple[GenomicInterval, ...]] = None

    def __call__(self, records: Iterable[Any]) -> Iterator[NormalizedRead]:
        for record in records:
            if not overlaps(record, self.intervals):
                continue
            try:
                yield adapt_alignment_record(record)
            except MalformedRecordError as e:
                # TODO: make the validation stringency configurable instead of always dropping
                logger.debug(f"Dropping malformed record: {e}")


@dataclass(frozen=True)
class AdaptColumnarRecords:
    """Adapt every columnar row; the header handle is shared by all of them."""

    header: Broadcast

    def __call__(self, records: Iterable[Any]) -> Iterator[NormalizedRead]:
        for record in records:
            yield adapt_columnar_record(record, self.header)


@dataclass(frozen=True)
class ReadPartition:
    index: int
    split: FileSplit
    stage: Any

    def compute(self) -> Iterator[NormalizedRead]:
        return self.stage(read_split(self.split))


def _compute_partition(partition: ReadPartition) -> List[NormalizedRead]:
    return list(partition.compute())


class ReadsDataset:
    """
    Lazy sequence of NormalizedRead over independent partitions.

    Iteration is pull-based and goes partition by partition; reads keep their
    on-disk order within a partition. ``collect`` can fan partitions out over
    worker processes, in which case only intra-partition order is meaningful
    to callers, although results are concatenated in partition order.
    """

    def __init__(self, partitions: List[ReadPartition]):
        self._partitions = list(partitions)

    def __repr__(self) -> str:
        return f"ReadsDataset(num_partitions={self.num_partitions})"

    @property
    def partitions(self) -> List[ReadPartition]:
        return list(self._partitions)

    @property
    def num_partitions(self) -> int:
        return len(self._partitions)

    def iter_partitions(self) -> Iterator[Iterator[NormalizedRead]]:
        for partition in self._partitions:
            yield partition.compute()

    def __iter__(self) -> Iterator[NormalizedRead]:
        for reads in self.iter_partitions():
            yield from reads

    def collect(self, n_jobs: int = 1) -> List[NormalizedRead]:
        n_jobs = resolve_n_jobs(n_jobs)
        if n_jobs == 1 or self.num_partitions <= 1:
            return list(self)

        reads: List[NormalizedRead] = []
        with ProcessPoolExecutor(max_workers=min(n_jobs, self.num_partitions)) as executor:
            for partition_reads in executor.map(_compute_partition, self._partitions):
                reads.extend(partition_reads)
        return reads

    def count(self, n_jobs: int = 1) -> int:
        if resolve_n_jobs(n_jobs) == 1:
            return sum(1 for _ in self)
        return len(self.collect(n_jobs))
