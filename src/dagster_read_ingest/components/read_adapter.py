"""
Read Adapter

Normalizes raw records of either supported on-disk format into one read type.

Alignment records (SAM/BAM/CRAM) are copied into a header-detached dict, the
same shape the columnar format stores, but with reference names instead of
dictionary indices. Columnar rows keep their indices and resolve them through a
broadcast header.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

import pysam

from .errors import MalformedRecordError
from .types import ReadsHeader

_CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=X])")
_REFERENCE_CONSUMING_OPS = frozenset("MDN=X")

FLAG_PAIRED = 0x1
FLAG_UNMAPPED = 0x4
FLAG_REVERSE = 0x10


class ReadFormat(Enum):
    ALIGNMENT = "alignment"
    COLUMNAR = "columnar"


@dataclass(frozen=True)
class Broadcast:
    """Read-only handle to one value shared by every worker of a load."""

    value: Optional[ReadsHeader] = None


def cigar_reference_length(cigar: Optional[str]) -> int:
    """Number of reference bases a CIGAR string consumes."""
    if not cigar or cigar == "*":
        return 0
    return sum(
        int(length) for length, op in _CIGAR_RE.findall(cigar) if op in _REFERENCE_CONSUMING_OPS
    )


def _position(value: Optional[int]) -> Optional[int]:
    """0-based coordinate to 1-based, keeping the unplaced sentinel as None."""
    if value is None or value < 0:
        return None
    return value + 1


@dataclass(frozen=True)
class NormalizedRead:
    """
    A read from either on-disk format.

    ``kind`` tags which payload ``record`` holds. Columnar reads also carry the
    broadcast header handle used to resolve reference indices; the handle keeps
    the header alive for as long as the read exists.

    Coordinates are 1-based and inclusive. ``contig``, ``start`` and ``end``
    are None for unmapped reads; ``assigned_contig`` and ``assigned_start``
    report the placement an unmapped read may still have for sorting.
    """

    kind: ReadFormat
    record: Dict[str, Any]
    header: Optional[Broadcast] = None

    def __hash__(self) -> int:
        # The record dict is not hashable; equal reads agree on these keys.
        return hash((self.kind, self.name, self.flags, self.record.get("reference_start")))

    def _reference_name(self, name_key: str, index_key: str) -> Optional[str]:
        if self.kind is ReadFormat.ALIGNMENT:
            return self.record.get(name_key)
        header = self.header.value if self.header is not None else None
        if header is None:
            return None
        index = self.record.get(index_key)
        if index is None or index < 0:
            return None
        return header.get_reference_name(index)

    @property
    def name(self) -> Optional[str]:
        return self.record.get("query_name")

    @property
    def flags(self) -> int:
        return self.record.get("flag") or 0

    @property
    def is_unmapped(self) -> bool:
        return bool(self.flags & FLAG_UNMAPPED)

    @property
    def is_paired(self) -> bool:
        return bool(self.flags & FLAG_PAIRED)

    @property
    def is_reverse_strand(self) -> bool:
        return bool(self.flags & FLAG_REVERSE)

    @property
    def assigned_contig(self) -> Optional[str]:
        return self._reference_name("reference_name", "reference_id")

    @property
    def assigned_start(self) -> Optional[int]:
        return _position(self.record.get("reference_start"))

    @property
    def contig(self) -> Optional[str]:
        return None if self.is_unmapped else self.assigned_contig

    @property
    def start(self) -> Optional[int]:
        return None if self.is_unmapped else self.assigned_start

    @property
    def end(self) -> Optional[int]:
        start = self.start
        if start is None:
            return None
        if self.kind is ReadFormat.ALIGNMENT:
            end = self.record.get("reference_end")
            return end if end is not None else start - 1
        return start + cigar_reference_length(self.cigar) - 1

    @property
    def contig_length(self) -> Optional[int]:
        if self.kind is ReadFormat.ALIGNMENT:
            return self.record.get("reference_length")
        header = self.header.value if self.header is not None else None
        if header is None:
            return None
        return header.get_reference_length(self.record.get("reference_id"))

    @property
    def mapping_quality(self) -> Optional[int]:
        return self.record.get("mapping_quality")

    @property
    def cigar(self) -> Optional[str]:
        return self.record.get("cigarstring")

    @property
    def sequence(self) -> Optional[str]:
        return self.record.get("query_sequence")

    @property
    def base_qualities(self) -> Optional[List[int]]:
        return self.record.get("query_qualities")

    @property
    def length(self) -> int:
        sequence = self.sequence
        return len(sequence) if sequence else 0

    @property
    def mate_contig(self) -> Optional[str]:
        return self._reference_name("next_reference_name", "next_reference_id")

    @property
    def mate_start(self) -> Optional[int]:
        return _position(self.record.get("next_reference_start"))

    @property
    def fragment_length(self) -> int:
        return self.record.get("template_length") or 0

    @property
    def attributes(self) -> Dict[str, Any]:
        if self.kind is ReadFormat.ALIGNMENT:
            return {tag: value for tag, value, _ in self.record.get("tags", [])}
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.kind.value,
            "name": self.name,
            "flags": self.flags,
            "contig": self.contig,
            "start": self.start,
            "end": self.end,
            "mapping_quality": self.mapping_quality,
            "cigar": self.cigar,
            "mate_contig": self.mate_contig,
            "mate_start": self.mate_start,
            "fragment_length": self.fragment_length,
            "sequence": self.sequence,
            "base_qualities": self.base_qualities,
        }


def adapt_alignment_record(segment: pysam.AlignedSegment) -> NormalizedRead:
    """
    Copy a pysam record into a header-detached NormalizedRead.

    Aux tags are decoded eagerly, so an invalid encoded attribute surfaces
    here as MalformedRecordError instead of later in the pipeline.
    """
    try:
        qualities = segment.query_qualities
        record = {
            "query_name": segment.query_name,
            "flag": segment.flag,
            "reference_name": segment.reference_name,
            "reference_length": (
                segment.header.get_reference_length(segment.reference_name)
                if segment.reference_name is not None
                else None
            ),
            "reference_start": segment.reference_start,
            "reference_end": segment.reference_end,
            "mapping_quality": segment.mapping_quality,
            "cigarstring": segment.cigarstring,
            "next_reference_name": segment.next_reference_name,
            "next_reference_start": segment.next_reference_start,
            "template_length": segment.template_length,
            "query_sequence": segment.query_sequence,
            "query_qualities": list(qualities) if qualities is not None else None,
            "tags": [tuple(tag) for tag in segment.get_tags(with_value_type=True)],
        }
    except (ValueError, KeyError) as e:
        raise MalformedRecordError(
            f"Cannot decode record {segment.query_name!r}: {e}"
        ) from e
    return NormalizedRead(ReadFormat.ALIGNMENT, record)


def adapt_columnar_record(
    record: Mapping[str, Any], header: Optional[Broadcast] = None
) -> NormalizedRead:
    """Wrap a columnar row together with the broadcast header handle."""
    return NormalizedRead(
        ReadFormat.COLUMNAR, dict(record), header if header is not None else Broadcast()
    )


def normalize(
    raw: Union[pysam.AlignedSegment, Mapping[str, Any]],
    header: Optional[Broadcast] = None,
) -> NormalizedRead:
    """Adapt a raw record of either format."""
    if isinstance(raw, pysam.AlignedSegment):
        return adapt_alignment_record(raw)
    if isinstance(raw, Mapping):
        return adapt_columnar_record(raw, header)
    raise TypeError(f"Unsupported raw record type: {type(raw).__name__}")
