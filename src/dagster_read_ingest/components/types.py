"""
Shared types for read ingestion components.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pysam

_INTERVAL_RE = re.compile(r"^(?P<contig>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")


@dataclass(frozen=True)
class GenomicInterval:
    """A closed, 1-based [start, end] region on a named reference sequence."""

    contig: str
    start: int
    end: int

    def __post_init__(self):
        if self.start < 1:
            raise ValueError(f"Interval start must be >= 1: {self.contig}:{self.start}")
        if self.end < self.start:
            raise ValueError(
                f"Interval end must not be before start: {self.contig}:{self.start}-{self.end}"
            )

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"

    def __len__(self) -> int:
        return self.end - self.start + 1

    def contains(self, position: int) -> bool:
        return self.start <= position <= self.end

    def overlaps(self, contig: Optional[str], start: int, end: int) -> bool:
        """True if [start, end] on contig intersects this interval."""
        if contig is None or contig != self.contig:
            return False
        return start <= self.end and self.start <= end

    @classmethod
    def parse(
        cls, text: str, sequence_dictionary: Optional["SequenceDictionary"] = None
    ) -> "GenomicInterval":
        """
        Parse ``contig:start-end``, ``contig:start`` or ``contig``.

        A bare contig spans the whole reference and needs a sequence dictionary
        to look up its length.
        """
        match = _INTERVAL_RE.match(text.strip())
        if not match:
            raise ValueError(f"Cannot parse interval: {text!r}")

        contig = match.group("contig")
        if match.group("start") is None:
            if sequence_dictionary is None:
                raise ValueError(
                    f"Interval {text!r} names a whole contig but no sequence dictionary was given"
                )
            length = sequence_dictionary.get_length(contig)
            if length is None:
                raise ValueError(f"Contig {contig!r} is not in the sequence dictionary")
            return cls(contig, 1, length)

        start = int(match.group("start").replace(",", ""))
        end_text = match.group("end")
        end = int(end_text.replace(",", "")) if end_text else start
        return cls(contig, start, end)


def parse_intervals(
    texts: Optional[Sequence[str]],
    sequence_dictionary: Optional["SequenceDictionary"] = None,
) -> Optional[List[GenomicInterval]]:
    """Parse interval strings; ``None`` stays ``None`` (no filtering)."""
    if texts is None:
        return None
    return [GenomicInterval.parse(text, sequence_dictionary) for text in texts]


@dataclass(frozen=True)
class SequenceRecord:
    name: str
    length: int


@dataclass(frozen=True)
class SequenceDictionary:
    """Ordered (reference name, length) pairs taken from a header."""

    sequences: Tuple[SequenceRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.sequences)

    def __iter__(self) -> Iterator[SequenceRecord]:
        return iter(self.sequences)

    def get(self, index: int) -> Optional[SequenceRecord]:
        if 0 <= index < len(self.sequences):
            return self.sequences[index]
        return None

    def index_of(self, name: str) -> Optional[int]:
        for index, record in enumerate(self.sequences):
            if record.name == name:
                return index
        return None

    def get_length(self, name: str) -> Optional[int]:
        index = self.index_of(name)
        return None if index is None else self.sequences[index].length

    @classmethod
    def from_alignment_header(cls, header: pysam.AlignmentHeader) -> "SequenceDictionary":
        return cls(
            tuple(
                SequenceRecord(name, length)
                for name, length in zip(header.references, header.lengths)
            )
        )


def all_intervals_for_reference(
    sequence_dictionary: SequenceDictionary,
) -> List[GenomicInterval]:
    """One interval per reference sequence, spanning its full length."""
    return [GenomicInterval(record.name, 1, record.length) for record in sequence_dictionary]


@dataclass(frozen=True)
class ReadsHeader:
    """
    File-level metadata of one logical read dataset.

    Kept as plain data (the ``AlignmentHeader.to_dict()`` form) so the header
    pickles cleanly when it is shipped to worker processes. Treat it as
    read-only once resolved.
    """

    sequence_dictionary: SequenceDictionary
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_alignment_header(cls, header: pysam.AlignmentHeader) -> "ReadsHeader":
        return cls(
            sequence_dictionary=SequenceDictionary.from_alignment_header(header),
            fields=header.to_dict(),
        )

    def to_alignment_header(self) -> pysam.AlignmentHeader:
        return pysam.AlignmentHeader.from_dict(self.fields)

    @property
    def sort_order(self) -> Optional[str]:
        return self.fields.get("HD", {}).get("SO")

    def get_reference_name(self, index: Optional[int]) -> Optional[str]:
        if index is None:
            return None
        record = self.sequence_dictionary.get(index)
        return None if record is None else record.name

    def get_reference_length(self, index: Optional[int]) -> Optional[int]:
        if index is None:
            return None
        record = self.sequence_dictionary.get(index)
        return None if record is None else record.length
