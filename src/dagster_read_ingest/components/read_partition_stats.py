"""
Read statistics per partition and per run.
"""

from typing import Any, Dict, List, Sequence

import numpy as np

from .read_adapter import NormalizedRead


def partition_stats(partition_index: int, reads: Sequence[NormalizedRead]) -> Dict[str, Any]:
    """Count mapped/unmapped reads and average length and mapping quality."""
    lengths = np.fromiter((read.length for read in reads), dtype=np.int64, count=len(reads))
    mapped = np.fromiter((not read.is_unmapped for read in reads), dtype=bool, count=len(reads))
    qualities = np.fromiter(
        (read.mapping_quality for read in reads if read.mapping_quality is not None),
        dtype=np.float64,
    )

    return {
        "partition": partition_index,
        "reads": len(reads),
        "mapped_reads": int(mapped.sum()),
        "unmapped_reads": int(len(reads) - mapped.sum()),
        "total_bases": int(lengths.sum()),
        "avg_read_length": round(float(lengths.mean()), 1) if len(reads) else 0.0,
        "avg_mapping_quality": round(float(qualities.mean()), 2) if qualities.size else 0.0,
    }


def summarize_partitions(stats: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Combine per-partition stats into run-level totals."""
    reads = sum(s["reads"] for s in stats)
    mapped = sum(s["mapped_reads"] for s in stats)
    total_bases = sum(s["total_bases"] for s in stats)
    weights = np.array([s["reads"] for s in stats], dtype=np.float64)
    qualities = np.array([s["avg_mapping_quality"] for s in stats], dtype=np.float64)

    return {
        "partitions": len(stats),
        "reads": reads,
        "mapped_reads": mapped,
        "unmapped_reads": reads - mapped,
        "mapping_rate": mapped / reads if reads > 0 else 0,
        "avg_read_length": round(total_bases / reads, 1) if reads else 0.0,
        "avg_mapping_quality": (
            round(float(np.average(qualities, weights=weights)), 2) if reads else 0.0
        ),
    }
