import pickle

import pysam
import pytest

from dagster_read_ingest.components.errors import MalformedRecordError
from dagster_read_ingest.components.header import resolve_header
from dagster_read_ingest.components.read_adapter import (
    Broadcast,
    ReadFormat,
    adapt_alignment_record,
    adapt_columnar_record,
    cigar_reference_length,
    normalize,
)


def _read_all(path):
    with pysam.AlignmentFile(str(path), "r", check_sq=False) as samfile:
        return list(samfile.fetch(until_eof=True))


def test_cigar_reference_length():
    assert cigar_reference_length("10M") == 10
    assert cigar_reference_length("5S10M2I3D4N1=1X2H") == 19
    assert cigar_reference_length("*") == 0
    assert cigar_reference_length(None) == 0


def test_adapt_alignment_record(tmp_path, write_alignments):
    bam = write_alignments(
        tmp_path / "reads.bam",
        [{"name": "r1", "reference_id": 1, "start": 9, "flag": 16, "tags": [("NM", 1), ("RG", "grp")]}],
    )
    (segment,) = _read_all(bam)

    read = adapt_alignment_record(segment)

    assert read.kind is ReadFormat.ALIGNMENT
    assert read.header is None
    assert read.name == "r1"
    assert read.contig == "chr2"
    assert read.contig_length == 500
    assert (read.start, read.end) == (10, 19)
    assert read.is_reverse_strand
    assert not read.is_unmapped
    assert read.mapping_quality == 60
    assert read.length == 10
    assert read.base_qualities == [40] * 10
    assert read.attributes == {"NM": 1, "RG": "grp"}
    assert pickle.loads(pickle.dumps(read)) == read
    assert hash(pickle.loads(pickle.dumps(read))) == hash(read)
    assert len({read, adapt_alignment_record(segment)}) == 1


def test_adapt_unmapped_placed_record(tmp_path, write_alignments):
    bam = write_alignments(
        tmp_path / "reads.bam", [{"name": "u1", "flag": 4, "start": 149, "cigar": None}]
    )
    (segment,) = _read_all(bam)

    read = adapt_alignment_record(segment)

    assert read.is_unmapped
    assert read.contig is None
    assert read.start is None
    assert read.end is None
    assert read.assigned_contig == "chr1"
    assert read.assigned_start == 150


class MalformedSegment:
    query_name = "bad"
    query_qualities = None
    flag = 0
    reference_name = None
    reference_start = -1
    reference_end = None
    mapping_quality = 0
    cigarstring = None
    next_reference_name = None
    next_reference_start = -1
    template_length = 0
    query_sequence = None

    def get_tags(self, with_value_type=False):
        raise ValueError("invalid aux type 'q'")


def test_adapt_alignment_record_surfaces_malformed_attributes():
    with pytest.raises(MalformedRecordError, match="bad") as excinfo:
        adapt_alignment_record(MalformedSegment())
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_adapt_columnar_record_resolves_names_through_header(
    tmp_path, write_alignments, columnar_rows
):
    header = resolve_header(str(write_alignments(tmp_path / "h.bam", [])))
    handle = Broadcast(header)

    read = adapt_columnar_record(columnar_rows[1], handle)

    assert read.kind is ReadFormat.COLUMNAR
    assert read.header is handle
    assert read.contig == "chr2"
    assert read.contig_length == 500
    assert (read.start, read.end) == (11, 21)
    assert read.mate_contig is None
    assert read.attributes == {}


def test_adapt_columnar_record_without_header(columnar_rows):
    read = adapt_columnar_record(columnar_rows[1])

    assert read.header == Broadcast(None)
    assert read in {adapt_columnar_record(columnar_rows[1])}
    assert read.contig is None
    assert read.contig_length is None
    assert read.start == 11


def test_adapt_columnar_unmapped_record(columnar_rows):
    read = adapt_columnar_record(columnar_rows[3], Broadcast(None))

    assert read.is_unmapped
    assert read.start is None
    assert read.assigned_start is None
    assert read.end is None


def test_normalize_dispatches_on_raw_type(tmp_path, write_alignments, columnar_rows):
    (segment,) = _read_all(write_alignments(tmp_path / "r.bam", [{"name": "r1"}]))

    assert normalize(segment).kind is ReadFormat.ALIGNMENT
    assert normalize(columnar_rows[0], Broadcast(None)).kind is ReadFormat.COLUMNAR
    with pytest.raises(TypeError):
        normalize(42)


def test_to_dict_reports_common_fields(columnar_rows):
    read = adapt_columnar_record(columnar_rows[0])

    assert read.to_dict()["format"] == "columnar"
    assert read.to_dict()["name"] == "row0"
    assert read.to_dict()["start"] == 1
