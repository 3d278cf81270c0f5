"""
Split-bounded partitioned reading of alignment and columnar files.

Decoded reads take far more memory than their on-disk encoding, so every input
file is cut into splits of at most ``max_split_size`` on-disk bytes, and each
split is decoded independently by one worker.

BAM files split at record-aligned BGZF virtual offsets taken from their index,
so planning never decodes records; a BAM without an index is one split. SAM
and CRAM files cannot seek to an arbitrary record and are read as one split
each. Parquet files split at row-group boundaries.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import pysam
from pyarrow import parquet as pq

from .header import is_remote, list_input_files
from .read_adapter import ReadFormat
from .split_index import find_split_offsets

logger = logging.getLogger(__name__)

PARQUET_BATCH_ROWS = 10_000


@dataclass(frozen=True)
class FileSplit:
    """
    One bounded chunk of one input file.

    For BAM, ``start``/``end`` are virtual offsets and ``end=None`` reads to
    the end of the file. For SAM/CRAM both are None. For Parquet they are the
    half-open row-group range.
    """

    path: str
    record_format: ReadFormat
    index: int
    start: Optional[int]
    end: Optional[int]
    length: int


def format_progress(
    split_num: int, total_splits: Optional[int], records: int, rate: float = None
) -> str:
    """Format progress message for consistent logging."""
    base = f"Split {split_num}" + (f":{total_splits}" if total_splits else "")
    base += f" | Records: {records:8d}"
    if rate is not None:
        base += f" | Rate: {rate:6.0f} records/sec"
    return base


def _plan_alignment_file(path: str, max_split_size: int) -> List[Dict[str, Any]]:
    with pysam.AlignmentFile(path, "r", check_sq=False) as samfile:
        is_bam = samfile.is_bam
        # Virtual offset of the first record, right after the header.
        start = samfile.tell() if is_bam else None

    if not is_bam:
        return [{"start": None, "end": None, "length": _file_size(path)}]

    offsets = find_split_offsets(path)
    if offsets is None:
        logger.warning(f"No index found for {path}, reading it as a single split")
        offsets = []

    splits = []
    for offset in offsets:
        if offset > start and (offset >> 16) - (start >> 16) >= max_split_size:
            splits.append({"start": start, "end": offset, "length": (offset >> 16) - (start >> 16)})
            start = offset

    splits.append({"start": start, "end": None, "length": max(0, _file_size(path) - (start >> 16))})
    return splits


def _plan_parquet_file(path: str, max_split_size: int) -> List[Dict[str, Any]]:
    metadata = pq.ParquetFile(path).metadata

    splits = []
    start, length = 0, 0
    for i in range(metadata.num_row_groups):
        row_group = metadata.row_group(i)
        size = sum(row_group.column(c).total_compressed_size for c in range(row_group.num_columns))
        if i > start and length + size > max_split_size:
            splits.append({"start": start, "end": i, "length": length})
            start, length = i, 0
        length += size

    if metadata.num_row_groups > start:
        splits.append({"start": start, "end": metadata.num_row_groups, "length": length})
    return splits


def _file_size(path: str) -> int:
    # Size of remote objects is not known without a request.
    return 0 if is_remote(path) else os.path.getsize(path)


def plan_splits(path: str, record_format: ReadFormat, max_split_size: int) -> List[FileSplit]:
    """
    Cut every input file under ``path`` into splits of bounded on-disk size.

    Split indices are numbered across all files, in file order.
    """
    splits: List[FileSplit] = []
    files = list_input_files(path)
    for file_path in files:
        if record_format is ReadFormat.ALIGNMENT:
            planned = _plan_alignment_file(file_path, max_split_size)
        else:
            planned = _plan_parquet_file(file_path, max_split_size)

        for bounds in planned:
            splits.append(FileSplit(file_path, record_format, len(splits), **bounds))
        logger.debug(f"Planned {len(planned)} splits for {file_path}")

    logger.info(
        f"Planned {len(splits)} splits over {len(files)} files "
        f"({sum(s.length for s in splits):,} bytes, max {max_split_size:,} per split)"
    )
    return splits


def _read_alignment_split(split: FileSplit) -> Iterator[pysam.AlignedSegment]:
    samfile = pysam.AlignmentFile(split.path, "r", check_sq=False)
    try:
        if split.start is not None:
            samfile.seek(split.start)
        while split.end is None or samfile.tell() < split.end:
            try:
                yield next(samfile)
            except StopIteration:
                break
    finally:
        samfile.close()


def _read_parquet_split(split: FileSplit) -> Iterator[Dict[str, Any]]:
    parquet = pq.ParquetFile(split.path)
    row_groups = list(range(split.start, split.end))
    for batch in parquet.iter_batches(batch_size=PARQUET_BATCH_ROWS, row_groups=row_groups):
        yield from batch.to_pylist()


def read_split(split: FileSplit) -> Iterator[Any]:
    """Decode the raw records of one split, in on-disk order."""
    if split.record_format is ReadFormat.ALIGNMENT:
        records = _read_alignment_split(split)
    else:
        records = _read_parquet_split(split)

    start_time = time.time()
    count = 0
    for record in records:
        count += 1
        yield record

    elapsed_time = time.time() - start_time
    rate = count / elapsed_time if elapsed_time > 0 else 0
    logger.debug(format_progress(split.index, None, count, rate) + f" | {split.path}")
