"""Strand-aware coordinate intervals for sequence and model space.

This module provides the shared coordinate representation used by every
part of the engine:

- 1-based inclusive intervals with a strand
- Segment lists (possibly spliced coordinates) with a text form
- Overlap, containment, and merging
- Conversion between positions and 0-based column indices

Coordinates on the minus strand are written 5' to 3', so ``start`` is
numerically greater than ``end``. The text form of an interval is
``<start>..<end>:<strand>`` and segments are joined with commas. The
blank segment list (``-``) marks an alert with no well-defined region.

Example:
    >>> from viralqc.utils.intervals import Interval, SegmentList, Strand
    >>> iv = Interval(11, 31, Strand.PLUS)
    >>> iv.length
    21
    >>> str(SegmentList.parse("11..22:+,23..28:+"))
    '11..22:+,23..28:+'
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from enum import Enum
from typing import NamedTuple


# =============================================================================
# Enums
# =============================================================================


class Strand(Enum):
    """Strand of an interval."""

    PLUS = "+"
    MINUS = "-"
    UNKNOWN = "?"

    @property
    def opposite(self) -> "Strand":
        """The other strand (UNKNOWN stays UNKNOWN)."""
        if self is Strand.PLUS:
            return Strand.MINUS
        if self is Strand.MINUS:
            return Strand.PLUS
        return Strand.UNKNOWN

    @classmethod
    def parse(cls, text: str) -> "Strand":
        """Parse a strand symbol, raising ValueError on anything else."""
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Invalid strand symbol: {text!r}") from None


# =============================================================================
# Data Structures
# =============================================================================


class Interval(NamedTuple):
    """A 1-based inclusive interval with strand.

    Attributes:
        start: 5'-most position (1-based, inclusive).
        end: 3'-most position (1-based, inclusive).
        strand: Strand of the interval.
    """

    start: int
    end: int
    strand: Strand = Strand.PLUS

    @property
    def length(self) -> int:
        """Number of positions covered."""
        return abs(self.end - self.start) + 1

    @property
    def low(self) -> int:
        """Numerically smallest position."""
        return min(self.start, self.end)

    @property
    def high(self) -> int:
        """Numerically largest position."""
        return max(self.start, self.end)

    @property
    def five_prime(self) -> int:
        return self.start

    @property
    def three_prime(self) -> int:
        return self.end

    def contains(self, position: int) -> bool:
        """Check if this interval contains a position."""
        return self.low <= position <= self.high

    def contains_interval(self, other: "Interval") -> bool:
        """Check if ``other`` lies entirely within this interval on the same strand."""
        return (
            self.strand == other.strand
            and self.low <= other.low
            and other.high <= self.high
        )

    def overlaps(self, other: "Interval") -> bool:
        """Check if this interval overlaps another on the same strand."""
        return overlap_len(self, other) > 0

    def positions(self) -> range:
        """Positions in 5' to 3' order."""
        if self.start <= self.end:
            return range(self.start, self.end + 1)
        return range(self.start, self.end - 1, -1)

    def __str__(self) -> str:
        return f"{self.start}..{self.end}:{self.strand.value}"

    @classmethod
    def parse(cls, text: str) -> "Interval":
        """Parse ``<start>..<end>:<strand>``.

        Raises:
            ValueError: If the text is not a valid interval.
        """
        try:
            span, strand = text.strip().rsplit(":", 1)
            start, end = span.split("..")
            return cls(int(start), int(end), Strand.parse(strand))
        except ValueError:
            raise ValueError(f"Invalid interval: {text!r}") from None

    @classmethod
    def from_bounds(cls, low: int, high: int, strand: Strand) -> "Interval":
        """Build an interval from numeric bounds, orienting it by strand."""
        if strand is Strand.MINUS:
            return cls(high, low, strand)
        return cls(low, high, strand)


class SegmentList(Sequence):
    """Ordered, strand-consistent list of intervals.

    A segment list represents a feature that may be split across several
    sections (e.g. a spliced CDS). Segments are ordered 5' to 3' along the
    feature. An empty segment list is the blank coordinate ``-``.

    Example:
        >>> coords = SegmentList([Interval(1, 10), Interval(20, 30)])
        >>> coords.length
        21
    """

    __slots__ = ("_segments",)

    def __init__(self, segments: Iterable[Interval] = ()) -> None:
        self._segments: tuple[Interval, ...] = tuple(segments)
        strands = {seg.strand for seg in self._segments}
        if len(strands) > 1:
            raise ValueError(
                f"Segments must share a strand, got {sorted(s.value for s in strands)}"
            )

    def __getitem__(self, index):
        return self._segments[index]

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[Interval]:
        return iter(self._segments)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SegmentList):
            return self._segments == other._segments
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"SegmentList({str(self)!r})"

    def __str__(self) -> str:
        if not self._segments:
            return "-"
        return ",".join(str(seg) for seg in self._segments)

    @property
    def is_blank(self) -> bool:
        return not self._segments

    @property
    def length(self) -> int:
        """Summed length of all segments."""
        return sum(seg.length for seg in self._segments)

    @property
    def strand(self) -> Strand | None:
        """Shared strand, or None for the blank list."""
        return self._segments[0].strand if self._segments else None

    @property
    def first(self) -> Interval:
        return self._segments[0]

    @property
    def last(self) -> Interval:
        return self._segments[-1]

    def span(self) -> Interval:
        """Single interval from the 5'-most to the 3'-most position.

        Raises:
            ValueError: If the segment list is blank.
        """
        if not self._segments:
            raise ValueError("Blank coordinates have no span")
        strand = self.strand
        low = min(seg.low for seg in self._segments)
        high = max(seg.high for seg in self._segments)
        return Interval.from_bounds(low, high, strand)

    @classmethod
    def parse(cls, text: str) -> "SegmentList":
        """Parse a coordinate string such as ``1..10:+,20..30:+`` or ``-``."""
        text = text.strip()
        if text in ("", "-"):
            return BLANK
        return cls(Interval.parse(part) for part in text.split(","))

    @classmethod
    def of(cls, *intervals: Interval) -> "SegmentList":
        return cls(intervals)


BLANK = SegmentList()


# =============================================================================
# Interval Operations
# =============================================================================


def overlap_len(a: Interval, b: Interval, ignore_strand: bool = False) -> int:
    """Number of positions shared by two intervals.

    Symmetric. Intervals on opposite strands never overlap unless
    ``ignore_strand`` is set, in which case only their low/high bounds
    are compared.

    Args:
        a: First interval.
        b: Second interval.
        ignore_strand: Compare positions regardless of strand.

    Example:
        >>> overlap_len(Interval(1, 10), Interval(5, 20))
        6
        >>> overlap_len(Interval(1, 10), Interval(10, 5, Strand.MINUS), ignore_strand=True)
        6
    """
    if a.strand != b.strand and not ignore_strand:
        return 0
    low = max(a.low, b.low)
    high = min(a.high, b.high)
    return max(0, high - low + 1)


def segment_list_overlap(a: SegmentList, b: SegmentList) -> int:
    """Summed pairwise overlap between two segment lists."""
    return sum(overlap_len(x, y) for x in a for y in b)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Merge overlapping or adjacent intervals that share a strand.

    Returned intervals are sorted by their low position within each
    strand and oriented 5' to 3'.
    """
    by_strand: dict[Strand, list[Interval]] = {}
    for iv in intervals:
        by_strand.setdefault(iv.strand, []).append(iv)

    merged: list[Interval] = []
    for strand, group in by_strand.items():
        group = sorted(group, key=lambda iv: iv.low)
        low, high = group[0].low, group[0].high
        for iv in group[1:]:
            if iv.low <= high + 1:
                high = max(high, iv.high)
            else:
                merged.append(Interval.from_bounds(low, high, strand))
                low, high = iv.low, iv.high
        merged.append(Interval.from_bounds(low, high, strand))
    return merged


def missing_intervals(
    covered: Iterable[Interval],
    length: int,
    strand: Strand = Strand.PLUS,
) -> list[Interval]:
    """Regions of ``1..length`` not covered by any interval.

    Intervals on other strands are ignored. Results are plus-oriented
    unless ``strand`` is MINUS.

    Example:
        >>> missing_intervals([Interval(5, 10)], 20)
        [Interval(start=1, end=4, strand=<Strand.PLUS: '+'>), Interval(start=11, end=20, strand=<Strand.PLUS: '+'>)]
    """
    same = [iv for iv in covered if iv.strand == strand]
    merged = sorted(merge_intervals(same), key=lambda iv: iv.low)
    gaps: list[Interval] = []
    pos = 1
    for iv in merged:
        if iv.low > pos:
            gaps.append(Interval.from_bounds(pos, min(iv.low - 1, length), strand))
        pos = max(pos, iv.high + 1)
        if pos > length:
            break
    if pos <= length:
        gaps.append(Interval.from_bounds(pos, length, strand))
    return gaps


def to_column_index(position: int) -> int:
    """Convert a 1-based position to a 0-based index."""
    if position < 1:
        raise ValueError(f"Positions are 1-based, got {position}")
    return position - 1


def to_position(index: int) -> int:
    """Convert a 0-based index to a 1-based position."""
    if index < 0:
        raise ValueError(f"Indices are 0-based, got {index}")
    return index + 1
