from __future__ import annotations

from pathlib import Path

import pyarrow as pa
import pysam
import pytest
from pyarrow import parquet as pq

REFERENCES = [("chr1", 1000), ("chr2", 500)]
LONG_REFERENCES = [("chr1", 10_000_000), ("chr2", 500)]


def _header_dict(references):
    return {
        "HD": {"VN": "1.6", "SO": "unsorted"},
        "SQ": [{"SN": name, "LN": length} for name, length in references],
    }


def _make_segment(header, name, reference_id=0, start=0, flag=0, cigar="10M", sequence=None, tags=None):
    sequence = sequence or "ACGTACGTAC"
    segment = pysam.AlignedSegment(header)
    segment.query_name = name
    segment.query_sequence = sequence
    segment.flag = flag
    segment.reference_id = reference_id
    segment.reference_start = start
    segment.mapping_quality = 0 if flag & 4 else 60
    if cigar is not None:
        segment.cigarstring = cigar
    segment.query_qualities = pysam.qualitystring_to_array("I" * len(sequence))
    if tags:
        segment.set_tags(tags)
    return segment


@pytest.fixture
def write_alignments():
    """Factory writing reads (dicts of _make_segment kwargs) to SAM/BAM."""

    def _write(path: Path, reads, references=REFERENCES, mode="wb") -> Path:
        header = pysam.AlignmentHeader.from_dict(_header_dict(references))
        with pysam.AlignmentFile(str(path), mode, header=header) as out:
            for read in reads:
                out.write(_make_segment(header, **read))
        return path

    return _write


@pytest.fixture
def write_indexed_bam(write_alignments):
    """Factory writing coordinate-sorted reads along a long chr1 to an indexed BAM."""

    def _write(path: Path, n_reads, spacing=1000) -> Path:
        reads = [
            {"name": f"r{i:05d}", "start": i * spacing, "cigar": "80M", "sequence": "ACGT" * 20}
            for i in range(n_reads)
        ]
        write_alignments(path, reads, references=LONG_REFERENCES)
        pysam.index(str(path))
        return path

    return _write


@pytest.fixture
def write_parquet():
    """Factory writing columnar read rows to a Parquet file."""

    def _write(path: Path, rows, row_group_size=2) -> Path:
        pq.write_table(pa.Table.from_pylist(rows), str(path), row_group_size=row_group_size)
        return path

    return _write


@pytest.fixture
def scenario_reads():
    """chr1 reads around the interval chr1:100-200."""
    return [
        {"name": "mapped_inside", "start": 149},
        {"name": "mapped_outside", "start": 299},
        {"name": "unmapped_placed_inside", "flag": 4, "start": 149, "cigar": None},
        {"name": "unmapped_placed_outside", "flag": 4, "start": 499, "cigar": None},
        {"name": "unmapped_unplaced", "flag": 4, "reference_id": -1, "start": -1, "cigar": None},
        {"name": "mapped_chr2", "reference_id": 1, "start": 9},
    ]


@pytest.fixture
def scenario_bam(tmp_path, write_alignments, scenario_reads):
    return write_alignments(tmp_path / "scenario.bam", scenario_reads)


@pytest.fixture
def columnar_rows():
    return [
        {
            "query_name": f"row{i}",
            "flag": 4 if i == 3 else 0,
            "reference_id": None if i == 3 else i % 2,
            "reference_start": None if i == 3 else 10 * i,
            "mapping_quality": 0 if i == 3 else 30 + i,
            "cigarstring": None if i == 3 else "5M1D5M",
            "next_reference_id": None,
            "next_reference_start": None,
            "template_length": 0,
            "query_sequence": "ACGTACGTAC",
            "query_qualities": [30] * 10,
        }
        for i in range(5)
    ]
