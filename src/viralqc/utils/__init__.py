"""Utility functions for viralqc.

- Coordinate intervals and segment lists
- Nucleotide and codon helpers
- Logging configuration

Example:
    >>> from viralqc.utils import Interval, SegmentList
    >>> SegmentList.parse("1..10:+,20..30:+").length
    21
"""

from viralqc.utils.intervals import Interval, SegmentList, Strand

__all__ = [
    "Interval",
    "SegmentList",
    "Strand",
]
