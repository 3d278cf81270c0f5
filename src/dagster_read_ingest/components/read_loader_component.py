"""
Parallel Read Loader Component

A configurable component that loads a read dataset as dynamic partitions, so
each split is decoded and filtered by its own mapped op.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import dagster
from dagster import DynamicOut, DynamicOutput, Field, OpExecutionContext, job, op

from .header import resolve_header
from .parallel_read_loader import DEFAULT_MAX_SPLIT_SIZE, ParallelReadLoader
from .read_adapter import NormalizedRead
from .read_partition_stats import partition_stats, summarize_partitions
from .reads_dataset import ReadPartition, ReadsDataset
from .splits import format_progress
from .types import parse_intervals

READ_FORMATS = ("alignment", "columnar")


@dataclass
class LoadedPartition:
    """The normalized reads of one partition."""

    index: int
    reads: List[NormalizedRead]


class ParallelReadLoaderComponent(dagster.Model, dagster.Resolvable):
    """
    Component for split-bounded, parallel loading of a read dataset.

    Alignment inputs (SAM/BAM/CRAM) are filtered by ``intervals``, or by every
    reference in the header when no intervals are given. Columnar inputs
    (Parquet) are loaded unfiltered, with the header from ``header_path`` when
    one is configured.
    """

    name: str = "reads"  # Unique identifier for this loader instance
    path: str
    read_format: str = "alignment"  # Options: alignment, columnar
    intervals: Optional[List[str]] = None  # e.g. ["chr1:100-200", "chr2"]
    header_path: Optional[str] = None
    max_split_size: int = DEFAULT_MAX_SPLIT_SIZE

    def _load_dataset(
        self, path: str, intervals: Optional[List[str]], max_split_size: int
    ) -> ReadsDataset:
        """Plan the dataset the way the configured read format requires."""
        if self.read_format not in READ_FORMATS:
            raise ValueError(f"Unknown read format: {self.read_format}")

        loader = ParallelReadLoader(max_split_size)
        if self.read_format == "columnar":
            header = resolve_header(self.header_path) if self.header_path else None
            return loader.load_columnar(path, header)

        if intervals is None:
            return loader.load_all(path)

        sequence_dictionary = None
        if any(":" not in text for text in intervals):
            sequence_dictionary = loader.get_header(path).sequence_dictionary
        return loader.load_filtered(path, parse_intervals(intervals, sequence_dictionary))

    def build_job(self) -> dagster.JobDefinition:
        @op(
            name=f"{self.name}_plan_partitions",
            config_schema={
                "path": Field(str, default_value=self.path),
                "intervals": Field([str], is_required=False),
                "max_split_size": Field(int, default_value=self.max_split_size),
            },
            out=DynamicOut(),
            description=f"Plans split-bounded {self.read_format} partitions for {self.name}",
        )
        def plan_partitions(
            context: OpExecutionContext,
        ) -> Iterator[DynamicOutput[ReadPartition]]:
            """
            Plans one partition per bounded split and yields them as dynamic
            outputs, so downstream loading fans out over workers.
            """
            path = context.op_config["path"]
            intervals = context.op_config.get("intervals", self.intervals)

            context.log.info(f"Planning {self.read_format} partitions for: {path}")
            try:
                dataset = self._load_dataset(path, intervals, context.op_config["max_split_size"])
            except Exception as e:
                context.log.error(f"✗ Failed to plan partitions for {path}: {e}")
                raise

            context.log.info(f"Total partitions: {dataset.num_partitions:,}")
            for partition in dataset.partitions:
                yield DynamicOutput(
                    partition,
                    f"partition_{partition.index}",
                    metadata={
                        "partition": partition.index,
                        "total_partitions": dataset.num_partitions,
                        "file": partition.split.path,
                        "split_bytes": partition.split.length,
                        "read_format": self.read_format,
                    },
                )

        @op(
            name=f"{self.name}_load_partition",
            description=f"Decodes, filters and normalizes one partition for {self.name}",
        )
        def load_partition(
            context: OpExecutionContext, partition: ReadPartition
        ) -> LoadedPartition:
            start_time = time.time()
            reads = list(partition.compute())
            elapsed_time = time.time() - start_time
            rate = len(reads) / elapsed_time if elapsed_time > 0 else 0

            context.log.info(format_progress(partition.index, None, len(reads), rate))
            return LoadedPartition(partition.index, reads)

        @op(
            name=f"{self.name}_partition_stats",
            description=f"Computes read statistics of one loaded partition for {self.name}",
        )
        def compute_partition_stats(
            context: OpExecutionContext, partition: LoadedPartition
        ) -> Dict[str, Any]:
            stats = partition_stats(partition.index, partition.reads)
            context.log.info(
                f"Partition {partition.index} loaded: {stats['mapped_reads']} mapped, "
                f"{stats['unmapped_reads']} unmapped reads"
            )
            return stats

        @op(name=f"{self.name}_summarize_reads")
        def summarize_reads(
            context: OpExecutionContext, partitions: List[Dict[str, Any]]
        ) -> Dict[str, Any]:
            """Collect and summarize the statistics of all loaded partitions."""
            summary = summarize_partitions(sorted(partitions, key=lambda s: s["partition"]))

            context.log.info("=" * 70)
            context.log.info("Loading complete!")
            context.log.info(f"Partitions loaded: {summary['partitions']}")
            context.log.info(f"Total reads: {summary['reads']:,}")
            context.log.info(
                f"Mapped reads: {summary['mapped_reads']:,} ({summary['mapping_rate']:.1%})"
            )
            context.log.info(f"Average read length: {summary['avg_read_length']:.1f} bases")
            return summary

        @job(name=f"{self.name}_job")
        def read_ingest_job():
            """
            Job that loads every partition in parallel and summarizes the reads.

            Only per-partition statistics are collected; each partition's reads
            stay in their own mapped output.
            """
            loaded = plan_partitions().map(load_partition)
            stats = loaded.map(compute_partition_stats)
            summarize_reads(stats.collect())

        return read_ingest_job

    def build_defs(self, context):
        return dagster.Definitions(jobs=[self.build_job()])
