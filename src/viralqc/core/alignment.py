"""Read-only view over a sequence-to-model alignment.

This module wraps the column list produced by an external aligner and
precomputes index arrays so detectors can map between model positions,
sequence positions, and alignment columns in constant time.

Internally the aligned residues are numbered 1..L in alignment order
("aligned order"). For a plus-strand alignment this equals the sequence
position; for a minus-strand alignment (the reverse complement of the
sequence was aligned) aligned position k corresponds to sequence
position ``L - k + 1``. Every public method speaks sequence positions.

Key Features:
    - O(1) model <-> sequence position lookups
    - Per-segment mapping with truncation and boundary diagnostics
    - Insert and deletion run enumeration
    - Strand-aware nucleotide fetching

Example:
    >>> view = AlignmentView(columns, sequence="ATG...", model_length=50)
    >>> view.first_nongap_seq_pos_at_or_after(11)
    11
    >>> view.is_feature_boundary_a_gap(feature, End.FIVE)
    False
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import NamedTuple

import attrs
import numpy as np

from viralqc.core.features import Feature
from viralqc.utils.intervals import Interval, SegmentList, Strand
from viralqc.utils.sequences import reverse_complement

logger = logging.getLogger(__name__)


class AlignmentError(ValueError):
    """Raised when an alignment column list is malformed."""

    pass


# =============================================================================
# Data Structures
# =============================================================================


class End(Enum):
    """End of a feature or segment."""

    FIVE = "5'"
    THREE = "3'"


@attrs.define(frozen=True, slots=True)
class AlignmentColumn:
    """One column of the sequence-to-model alignment.

    Attributes:
        model_pos: Model position consumed by this column, or None for an
            insertion column.
        seq_pos: Sequence position aligned in this column, or None if the
            sequence has a gap.
        residue: Aligned residue ("-" or "" for a gap).
        confidence: Posterior probability in [0, 1], or None.
    """

    model_pos: int | None
    seq_pos: int | None
    residue: str = ""
    confidence: float | None = None

    @property
    def is_insertion(self) -> bool:
        return self.model_pos is None

    @property
    def is_gap_in_seq(self) -> bool:
        return self.seq_pos is None


class ModelMapping(NamedTuple):
    """Model position for a sequence position.

    For inserted residues ``model_pos`` is the model position the insert
    follows (0 for inserts before the first model position).
    """

    model_pos: int
    is_insert: bool


class InsertRun(NamedTuple):
    """A run of residues inserted after a single model position."""

    after_model_pos: int
    seq: Interval

    @property
    def length(self) -> int:
        return self.seq.length


class DeleteRun(NamedTuple):
    """A run of consecutive model positions gapped in the sequence."""

    mdl: Interval
    seq_before: int
    seq_after: int

    @property
    def length(self) -> int:
        return self.mdl.length


@attrs.define(frozen=True, slots=True)
class SegmentMapping:
    """A model-space segment mapped onto the sequence.

    Attributes:
        model: The model-space segment.
        seq: Aligned sequence interval (5' to 3' along the feature).
        mdl: Model positions actually covered by aligned residues.
        trunc5: The sequence ends before the segment's 5' end.
        trunc3: The sequence ends before the segment's 3' end.
        gap5: The segment's 5'-most model position is a gap.
        gap3: The segment's 3'-most model position is a gap.
        conf5: Confidence at the first aligned residue.
        conf3: Confidence at the last aligned residue.
    """

    model: Interval
    seq: Interval
    mdl: Interval
    trunc5: bool
    trunc3: bool
    gap5: bool
    gap3: bool
    conf5: float | None
    conf3: float | None
    k_first: int
    k_last: int


@attrs.define(frozen=True, slots=True)
class FeatureMapping:
    """Per-segment mapping of a feature onto the sequence.

    ``segments`` has one entry per feature segment; entries are None for
    segments with no aligned residue. ``deleted`` lists the indices of
    segments missing inside the aligned region; ``uncovered`` lists those
    lying outside it (lost to truncation).
    """

    feature: Feature
    segments: tuple[SegmentMapping | None, ...]
    deleted: tuple[int, ...]
    uncovered: tuple[int, ...]

    @property
    def present(self) -> list[SegmentMapping]:
        return [s for s in self.segments if s is not None]

    @property
    def is_annotated(self) -> bool:
        return any(s is not None for s in self.segments)

    @property
    def is_fully_deleted(self) -> bool:
        return not self.is_annotated and len(self.deleted) == len(self.segments)

    @property
    def seq_coords(self) -> SegmentList:
        return SegmentList(s.seq for s in self.present)

    @property
    def mdl_coords(self) -> SegmentList:
        return SegmentList(s.mdl for s in self.present)

    @property
    def first(self) -> SegmentMapping | None:
        present = self.present
        return present[0] if present else None

    @property
    def last(self) -> SegmentMapping | None:
        present = self.present
        return present[-1] if present else None

    @property
    def trunc5(self) -> bool:
        """5' end not present in the sequence."""
        for i, seg in enumerate(self.segments):
            if seg is not None:
                return seg.trunc5
            if i in self.uncovered:
                return True
        return False

    @property
    def trunc3(self) -> bool:
        """3' end not present in the sequence."""
        for i in range(len(self.segments) - 1, -1, -1):
            seg = self.segments[i]
            if seg is not None:
                return seg.trunc3
            if i in self.uncovered:
                return True
        return False

    @property
    def seq_length(self) -> int:
        return sum(s.seq.length for s in self.present)


# =============================================================================
# Alignment View
# =============================================================================


class AlignmentView:
    """Read-only adapter over one sequence's alignment to its model.

    The view is built once per sequence and never mutates its input.

    Attributes:
        columns: The alignment columns.
        sequence: The full (unaligned) sequence, original orientation.
        model_length: Number of model positions.
        strand: Strand of the sequence that was aligned.
        has_confidence: Whether any column carries a confidence value.
    """

    def __init__(
        self,
        columns: Sequence[AlignmentColumn],
        sequence: str,
        model_length: int,
        strand: Strand = Strand.PLUS,
    ) -> None:
        if strand is Strand.UNKNOWN:
            raise AlignmentError("Alignment strand must be + or -")
        self.columns = tuple(columns)
        self.sequence = sequence
        self.model_length = model_length
        self.strand = strand
        self.seq_length = len(sequence)
        self._build_index()

    # -------------------------------------------------------------------------
    # Index construction
    # -------------------------------------------------------------------------

    def _build_index(self) -> None:
        n_model = self.model_length
        n_seq = self.seq_length

        # Model-indexed arrays, 1-based (index 0 and n_model+1 are sentinels)
        self._col_for_m = np.full(n_model + 2, -1, dtype=np.int64)
        self._k_for_m = np.zeros(n_model + 2, dtype=np.int64)
        # Aligned-order arrays, 1-based
        self._m_for_k = np.zeros(n_seq + 2, dtype=np.int64)
        self._is_insert_k = np.zeros(n_seq + 2, dtype=bool)
        self._col_for_k = np.full(n_seq + 2, -1, dtype=np.int64)
        self._conf_for_k = np.full(n_seq + 2, np.nan, dtype=np.float64)

        last_m = 0
        last_k = 0
        has_conf = False
        for idx, col in enumerate(self.columns):
            if col.model_pos is not None:
                m = col.model_pos
                if not 1 <= m <= n_model:
                    raise AlignmentError(
                        f"Column {idx}: model position {m} outside 1..{n_model}"
                    )
                if m <= last_m:
                    raise AlignmentError(
                        f"Column {idx}: model position {m} not increasing"
                    )
                last_m = m
                self._col_for_m[m] = idx
            if col.seq_pos is None:
                continue
            k = self._k_for(col.seq_pos)
            if k <= last_k:
                raise AlignmentError(
                    f"Column {idx}: sequence position {col.seq_pos} out of order"
                )
            last_k = k
            self._col_for_k[k] = idx
            self._m_for_k[k] = last_m
            self._is_insert_k[k] = col.is_insertion
            if col.confidence is not None:
                if not 0.0 <= col.confidence <= 1.0:
                    raise AlignmentError(
                        f"Column {idx}: confidence {col.confidence} outside [0, 1]"
                    )
                self._conf_for_k[k] = col.confidence
                has_conf = True
            if not col.is_insertion:
                self._k_for_m[col.model_pos] = k

        self.has_confidence = has_conf

        # First residue at or after each model position, last at or before
        big = n_seq + 1
        k_or_big = np.where(self._k_for_m > 0, self._k_for_m, big)
        k_or_big[0] = big
        k_or_big[n_model + 1] = big
        self._first_k_after = np.minimum.accumulate(k_or_big[::-1])[::-1]
        self._last_k_before = np.maximum.accumulate(self._k_for_m)

        aligned = np.nonzero(self._k_for_m[1 : n_model + 1])[0]
        self._first_aligned_m = int(aligned[0]) + 1 if aligned.size else 0
        self._last_aligned_m = int(aligned[-1]) + 1 if aligned.size else 0

    def _k_for(self, seq_pos: int) -> int:
        if not 1 <= seq_pos <= self.seq_length:
            raise AlignmentError(
                f"Sequence position {seq_pos} outside 1..{self.seq_length}"
            )
        if self.strand is Strand.MINUS:
            return self.seq_length - seq_pos + 1
        return seq_pos

    def _seq_pos(self, k: int) -> int:
        if self.strand is Strand.MINUS:
            return self.seq_length - k + 1
        return k

    def _seq_interval(self, k_first: int, k_last: int, strand: Strand) -> Interval:
        """Sequence interval for aligned positions, read in ``strand`` order."""
        if strand is Strand.PLUS:
            return Interval(self._seq_pos(k_first), self._seq_pos(k_last), self.seq_strand(strand))
        return Interval(self._seq_pos(k_last), self._seq_pos(k_first), self.seq_strand(strand))

    def seq_strand(self, feature_strand: Strand = Strand.PLUS) -> Strand:
        """Sequence strand of a model-space feature on this alignment."""
        if feature_strand is Strand.UNKNOWN:
            return Strand.UNKNOWN
        if feature_strand is self.strand:
            return Strand.PLUS
        return Strand.MINUS

    def _conf(self, k: int) -> float | None:
        value = self._conf_for_k[k]
        return None if np.isnan(value) else float(value)

    # -------------------------------------------------------------------------
    # Position lookups
    # -------------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        """True if no residue aligns to any model position."""
        return self._first_aligned_m == 0

    @property
    def aligned_model_span(self) -> tuple[int, int]:
        """First and last model positions with an aligned residue (0, 0 if none)."""
        return self._first_aligned_m, self._last_aligned_m

    def columns_for_model_pos(self, model_pos: int) -> list[AlignmentColumn]:
        """Columns holding residues aligned to ``model_pos``.

        Includes the match column (absent if the position is deleted in the
        sequence) and the insertion columns immediately following it.
        """
        col = int(self._col_for_m[model_pos])
        found = []
        if col >= 0:
            if self.columns[col].seq_pos is not None:
                found.append(self.columns[col])
            col += 1
        else:
            return found
        while col < len(self.columns) and self.columns[col].is_insertion:
            if self.columns[col].seq_pos is not None:
                found.append(self.columns[col])
            col += 1
        return found

    def model_pos_for_seq_pos(self, seq_pos: int) -> ModelMapping | None:
        """Aligned model position of a sequence position.

        Returns None when the position is not part of the alignment.
        """
        k = self._k_for(seq_pos)
        if self._col_for_k[k] < 0:
            return None
        return ModelMapping(int(self._m_for_k[k]), bool(self._is_insert_k[k]))

    def first_nongap_seq_pos_at_or_after(self, model_pos: int) -> int | None:
        """Sequence position of the first residue aligned at ``model_pos`` or later."""
        k = int(self._first_k_after[max(model_pos, 1)]) if model_pos <= self.model_length else 0
        if k == 0 or k > self.seq_length:
            return None
        return self._seq_pos(k)

    def last_nongap_seq_pos_at_or_before(self, model_pos: int) -> int | None:
        """Sequence position of the last residue aligned at ``model_pos`` or earlier."""
        k = int(self._last_k_before[min(model_pos, self.model_length)]) if model_pos >= 1 else 0
        if k == 0:
            return None
        return self._seq_pos(k)

    def confidence_at(self, seq_pos: int) -> float | None:
        """Posterior probability of the residue at ``seq_pos``, if any."""
        return self._conf(self._k_for(seq_pos))

    def seq_pos_at_model_pos(self, model_pos: int) -> int | None:
        """Sequence position aligned exactly at ``model_pos`` (None if deleted)."""
        k = int(self._k_for_m[model_pos])
        return self._seq_pos(k) if k else None

    def mean_confidence(self, seq_positions: Iterable[int]) -> float | None:
        """Mean confidence over sequence positions, ignoring missing values."""
        ks = [self._k_for(p) for p in seq_positions]
        if not ks:
            return None
        values = self._conf_for_k[ks]
        values = values[~np.isnan(values)]
        if values.size == 0:
            return None
        return float(values.mean())

    # -------------------------------------------------------------------------
    # Segment and feature mapping
    # -------------------------------------------------------------------------

    def map_segment(self, segment: Interval) -> SegmentMapping | None:
        """Map a model-space segment onto the sequence.

        Returns None if no residue aligns within the segment.
        """
        m_lo, m_hi = segment.low, segment.high
        k_lo = int(self._first_k_after[m_lo])
        k_hi = int(self._last_k_before[m_hi])
        if k_lo > self.seq_length or k_hi == 0 or k_lo > k_hi:
            return None

        found_lo = int(self._m_for_k[k_lo])
        found_hi = int(self._m_for_k[k_hi])
        lo_trunc = k_lo == 1 and found_lo != m_lo
        hi_trunc = k_hi == self.seq_length and found_hi != m_hi
        lo_gap = self._k_for_m[m_lo] == 0
        hi_gap = self._k_for_m[m_hi] == 0
        lo_conf = self._conf(k_lo)
        hi_conf = self._conf(k_hi)

        strand = segment.strand
        if strand is Strand.MINUS:
            return SegmentMapping(
                model=segment,
                seq=self._seq_interval(k_lo, k_hi, strand),
                mdl=Interval(found_hi, found_lo, strand),
                trunc5=hi_trunc,
                trunc3=lo_trunc,
                gap5=bool(hi_gap),
                gap3=bool(lo_gap),
                conf5=hi_conf,
                conf3=lo_conf,
                k_first=k_hi,
                k_last=k_lo,
            )
        return SegmentMapping(
            model=segment,
            seq=self._seq_interval(k_lo, k_hi, strand),
            mdl=Interval(found_lo, found_hi, strand),
            trunc5=lo_trunc,
            trunc3=hi_trunc,
            gap5=bool(lo_gap),
            gap3=bool(hi_gap),
            conf5=lo_conf,
            conf3=hi_conf,
            k_first=k_lo,
            k_last=k_hi,
        )

    def map_feature(self, feature: Feature) -> FeatureMapping:
        """Map every segment of a feature onto the sequence."""
        segments = []
        deleted = []
        uncovered = []
        for i, seg in enumerate(feature.coords):
            mapping = self.map_segment(seg)
            segments.append(mapping)
            if mapping is not None:
                continue
            before = self._last_k_before[seg.low - 1] if seg.low > 1 else 0
            after = self._first_k_after[seg.high + 1] if seg.high < self.model_length else 0
            if before > 0 and 0 < after <= self.seq_length:
                deleted.append(i)
            else:
                uncovered.append(i)
        return FeatureMapping(
            feature=feature,
            segments=tuple(segments),
            deleted=tuple(deleted),
            uncovered=tuple(uncovered),
        )

    def is_feature_boundary_a_gap(self, feature: Feature, end: End) -> bool:
        """Check if a feature's 5' or 3' model boundary is gapped in the sequence."""
        if end is End.FIVE:
            pos = feature.coords.first.start
        else:
            pos = feature.coords.last.end
        return self._k_for_m[pos] == 0

    # -------------------------------------------------------------------------
    # Indels
    # -------------------------------------------------------------------------

    def insertions(self) -> list[InsertRun]:
        """Runs of inserted residues, in aligned order.

        Inserts before the first or after the last model position are
        included with ``after_model_pos`` 0 or ``model_length``.
        """
        runs = []
        k = 1
        while k <= self.seq_length:
            if self._col_for_k[k] >= 0 and self._is_insert_k[k]:
                start = k
                after = int(self._m_for_k[k])
                while (
                    k + 1 <= self.seq_length
                    and self._is_insert_k[k + 1]
                    and self._m_for_k[k + 1] == after
                ):
                    k += 1
                runs.append(
                    InsertRun(after, self._seq_interval(start, k, Strand.PLUS))
                )
            k += 1
        return runs

    def deletions(self, low: int = 1, high: int | None = None) -> list[DeleteRun]:
        """Runs of model positions in ``low..high`` with no aligned residue.

        Only deletions flanked by aligned residues on both sides are
        returned; missing model positions at the ends of the alignment are
        truncations, not deletions.
        """
        high = self.model_length if high is None else high
        runs = []
        m = max(low, self._first_aligned_m + 1)
        stop = min(high, self._last_aligned_m - 1)
        while m <= stop:
            if self._k_for_m[m] == 0:
                start = m
                while m + 1 <= stop and self._k_for_m[m + 1] == 0:
                    m += 1
                before = int(self._last_k_before[start])
                after = int(self._first_k_after[m])
                runs.append(
                    DeleteRun(
                        Interval(start, m, Strand.PLUS),
                        self._seq_pos(before),
                        self._seq_pos(after),
                    )
                )
            m += 1
        return runs

    # -------------------------------------------------------------------------
    # Sequence access
    # -------------------------------------------------------------------------

    def fetch(self, interval: Interval) -> str:
        """Nucleotides of a sequence interval, reverse complemented on minus."""
        seq = self.sequence[interval.low - 1 : interval.high]
        if interval.strand is Strand.MINUS:
            return reverse_complement(seq)
        return seq

    def fetch_segments(self, coords: SegmentList) -> str:
        return "".join(self.fetch(seg) for seg in coords)

    def residue_walk(self, mapping: SegmentMapping) -> list[tuple[int, int, bool]]:
        """Residues of a mapped segment in feature order.

        Returns:
            List of (seq_pos, model_pos, is_insert). For inserts model_pos
            is the model position the insert follows.
        """
        step = 1 if mapping.k_first <= mapping.k_last else -1
        walk = []
        for k in range(mapping.k_first, mapping.k_last + step, step):
            if self._col_for_k[k] < 0:
                continue
            walk.append(
                (self._seq_pos(k), int(self._m_for_k[k]), bool(self._is_insert_k[k]))
            )
        return walk

    # -------------------------------------------------------------------------
    # Column coordinate conversion
    # -------------------------------------------------------------------------

    def model_interval_to_columns(self, interval: Interval) -> tuple[int, int]:
        """0-based column indices spanning a model interval.

        Raises:
            KeyError: If an end position has no column.
        """
        lo = int(self._col_for_m[interval.low])
        hi = int(self._col_for_m[interval.high])
        if lo < 0 or hi < 0:
            raise KeyError(f"No column for model interval {interval}")
        return lo, hi

    def columns_to_model_interval(
        self, first: int, last: int, strand: Strand = Strand.PLUS
    ) -> Interval | None:
        """Model interval covered by the model columns in ``first..last``."""
        positions = [
            c.model_pos for c in self.columns[first : last + 1] if c.model_pos is not None
        ]
        if not positions:
            return None
        return Interval.from_bounds(min(positions), max(positions), strand)
