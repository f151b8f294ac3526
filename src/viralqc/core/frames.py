"""Reading frame and codon analysis of CDS predictions.

This module walks the aligned residues of a CDS, tracking the reading
frame of every aligned nucleotide relative to the model, and reports
regions where the frame shifts away from the expected frame. It also
checks start codons, stop codons and CDS length.

Frame of a residue aligned to CDS model position ``p`` after ``n``
sequence nucleotides have been consumed is ``((n - p) mod 3) + 1``.
Inserted nucleotides are assigned to the run of the next aligned model
position. A 5'-truncated CDS missing ``x`` model positions has expected
frame ``((-x) mod 3) + 1``; otherwise the expected frame is 1.

Frame runs are the internal representation. The compact display strings
(e.g. ``1(3)1`` and ``1119:(66):2340``) are generated from them only when
alert details are written.

Example:
    >>> runs, edits = frame_runs(view, mapping)
    >>> format_frame_string(runs, expected=1)
    '1(3)1'
    >>> candidates = find_frameshifts(view, mapping, FrameConfig())
"""

from __future__ import annotations

import logging
from enum import Enum

import attrs

from viralqc.core.alignment import AlignmentView, FeatureMapping
from viralqc.utils.intervals import Interval, Strand
from viralqc.utils.sequences import (
    find_inframe_stops,
    is_start_codon,
    is_stop_codon,
    normalize,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Default thresholds
# =============================================================================

DEFAULT_FST_MIN_NT_INTERNAL = 6
DEFAULT_FST_MIN_NT_TERMINAL = 4
DEFAULT_FST_HIGH_THR = 0.8
DEFAULT_FST_HIGH_EXP_THR = 0.8
DEFAULT_FST_LOW_THR = 0.0
DEFAULT_MIN_RESTORE_NT = 1


# =============================================================================
# Configuration
# =============================================================================


@attrs.define(frozen=True)
class FrameConfig:
    """Thresholds for frameshift detection.

    Attributes:
        fst_min_nt_internal: Minimum shifted length for a region restored
            before the CDS end.
        fst_min_nt_terminal: Minimum shifted length for a region that
            reaches the CDS end.
        fst_high_thr: Minimum mean confidence in the shifted region for a
            high confidence frameshift.
        fst_high_exp_thr: Minimum mean confidence in the preceding
            expected-frame region for a high confidence frameshift.
        fst_low_thr: Minimum mean confidence in the shifted region for a
            low confidence frameshift.
        min_restore_nt: Expected-frame runs shorter than this do not end a
            shifted region. 1 means any return to the expected frame
            restores it.
    """

    fst_min_nt_internal: int = DEFAULT_FST_MIN_NT_INTERNAL
    fst_min_nt_terminal: int = DEFAULT_FST_MIN_NT_TERMINAL
    fst_high_thr: float = DEFAULT_FST_HIGH_THR
    fst_high_exp_thr: float = DEFAULT_FST_HIGH_EXP_THR
    fst_low_thr: float = DEFAULT_FST_LOW_THR
    min_restore_nt: int = DEFAULT_MIN_RESTORE_NT

    def validate(self) -> None:
        """Validate thresholds.

        Raises:
            ValueError: If a threshold is out of range.
        """
        if self.fst_min_nt_internal < 1 or self.fst_min_nt_terminal < 1:
            raise ValueError("Frameshift minimum lengths must be at least 1")
        if self.min_restore_nt < 1:
            raise ValueError("min_restore_nt must be at least 1")
        for name in ("fst_high_thr", "fst_high_exp_thr", "fst_low_thr"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.fst_low_thr > self.fst_high_thr:
            raise ValueError("fst_low_thr must not exceed fst_high_thr")


# =============================================================================
# Data Structures
# =============================================================================


class EditKind(Enum):
    INSERT = "insert"
    DELETE = "delete"


class FrameshiftConfidence(Enum):
    """Confidence class of a frameshift candidate."""

    HIGH = "high"
    LOW = "low"
    UNKNOWN = "unknown"


@attrs.define(frozen=True, slots=True)
class Edit:
    """An indel that changes the net frame shift.

    Attributes:
        kind: Insertion or deletion relative to the model.
        seq: Sequence interval (inserted residues, or the residues
            flanking a deletion).
        mdl: Model interval (position the insert follows, or the deleted
            positions).
        length: Number of inserted or deleted nucleotides.
    """

    kind: EditKind
    seq: Interval
    mdl: Interval
    length: int

    def describe(self) -> str:
        if self.kind is EditKind.INSERT:
            return f"{self.kind.value},S:{self.seq.start}..{self.seq.end}({self.length}),M:{self.mdl.start}"
        return f"{self.kind.value},S:{self.seq.start}..{self.seq.end},M:{self.mdl.start}..{self.mdl.end}({self.length})"


@attrs.define(slots=True)
class FrameRun:
    """A maximal stretch of CDS nucleotides read in one frame.

    Attributes:
        frame: Frame value (1, 2 or 3).
        length: Nucleotides in the run, including attributed inserts.
        truncated_5: The run starts at a 5'-truncated CDS end.
        truncated_3: The run ends at a 3'-truncated CDS end.
        seq_start: First sequence position of the run.
        seq_stop: Last sequence position of the run.
        mdl_start: First model position of the run.
        mdl_stop: Last model position of the run.
        confidences: Confidence values of residues in the run.
        cause: Edit that started this run, None for the first run.
    """

    frame: int
    length: int = 0
    truncated_5: bool = False
    truncated_3: bool = False
    seq_start: int = 0
    seq_stop: int = 0
    mdl_start: int = 0
    mdl_stop: int = 0
    confidences: list[float] = attrs.Factory(list)
    cause: Edit | None = None

    @property
    def mean_confidence(self) -> float | None:
        if not self.confidences:
            return None
        return sum(self.confidences) / len(self.confidences)


@attrs.define(frozen=True, slots=True)
class FrameshiftCandidate:
    """A shifted region long enough to report.

    Attributes:
        cause: Edit that shifted the frame.
        restore: Edit that restored the expected frame, None if the region
            reaches the CDS end.
        runs: Every run of the CDS, for display strings.
        expected_frame: Expected frame of the CDS.
        seq: Sequence interval of the shifted region.
        mdl: Model interval of the shifted region.
        length: Nucleotides in the shifted region.
        shifted_avgpp: Mean confidence in the shifted region.
        exp_avgpp: Mean confidence in the neighbouring expected region.
        confidence: Confidence class.
        terminal: The region reaches the CDS end.
    """

    cause: Edit | None
    restore: Edit | None
    runs: tuple[FrameRun, ...]
    expected_frame: int
    seq: Interval
    mdl: Interval
    length: int
    shifted_avgpp: float | None
    exp_avgpp: float | None
    confidence: FrameshiftConfidence
    terminal: bool

    @property
    def detail(self) -> str:
        parts = []
        if self.cause is not None:
            parts.append(f"cause:{self.cause.describe()};")
        if self.restore is not None:
            parts.append(f"restore:{self.restore.describe()};")
        parts.append(f"frame:{format_frame_string(self.runs, self.expected_frame)};")
        parts.append(f"length:{format_length_string(self.runs, self.expected_frame)};")
        if self.shifted_avgpp is not None:
            parts.append(f"shifted_avgpp:{self.shifted_avgpp:.3f};")
        if self.exp_avgpp is not None:
            parts.append(f"exp_avgpp:{self.exp_avgpp:.3f};")
        return " ".join(parts)


# =============================================================================
# Display strings
# =============================================================================


def format_frame_string(runs: tuple[FrameRun, ...] | list[FrameRun], expected: int) -> str:
    """Frame values of each run, shifted runs in parentheses.

    Example:
        >>> format_frame_string([FrameRun(1, 9), FrameRun(3, 6), FrameRun(1, 9)], 1)
        '1(3)1'
    """
    return "".join(
        str(run.frame) if run.frame == expected else f"({run.frame})" for run in runs
    )


def format_length_string(runs: tuple[FrameRun, ...] | list[FrameRun], expected: int) -> str:
    """Lengths of each run, shifted runs in parentheses.

    A 5'-truncated first run is prefixed with ``<`` and a 3'-truncated last
    run suffixed with ``>``.

    Example:
        >>> format_length_string([FrameRun(1, 1119), FrameRun(3, 66), FrameRun(1, 2340)], 1)
        '1119:(66):2340'
    """
    parts = []
    for run in runs:
        text = str(run.length) if run.frame == expected else f"({run.length})"
        if run.truncated_5:
            text = "<" + text
        if run.truncated_3:
            text = text + ">"
        parts.append(text)
    return ":".join(parts)


# =============================================================================
# Frame tracking
# =============================================================================


def _feature_positions(mapping: FeatureMapping) -> dict[int, int]:
    """Map model positions to 1-based CDS positions across segments."""
    positions: dict[int, int] = {}
    count = 0
    for seg in mapping.feature.coords:
        for pos in seg.positions():
            count += 1
            positions[pos] = count
    return positions


def expected_frame(mapping: FeatureMapping, view: AlignmentView) -> int:
    """Expected frame of a CDS, derived from 5' truncation."""
    if not mapping.trunc5 or mapping.first is None:
        return 1
    fpos = _feature_positions(mapping)
    missing = fpos[mapping.first.mdl.start] - 1
    return ((-missing) % 3) + 1


def frame_runs(view: AlignmentView, mapping: FeatureMapping) -> tuple[list[FrameRun], list[Edit]]:
    """Split a mapped CDS into frame runs.

    Args:
        view: Alignment view of the sequence.
        mapping: Mapping of the CDS onto the sequence.

    Returns:
        Tuple of (runs, edits) where edits are the frame-changing indels
        in feature order.
    """
    fpos = _feature_positions(mapping)
    strand = view.seq_strand(mapping.feature.strand)
    runs: list[FrameRun] = []
    edits: list[Edit] = []

    seq_count = 0
    pending: list[tuple[int, int]] = []  # inserted residues awaiting a match
    prev_seq = None
    prev_mdl = None
    prev_fpos = 0

    for seg in mapping.present:
        for seq_pos, model_pos, is_insert in view.residue_walk(seg):
            seq_count += 1
            if is_insert:
                pending.append((seq_pos, model_pos))
                continue
            cur_fpos = fpos[model_pos]
            frame = ((seq_count - cur_fpos) % 3) + 1
            conf = view.confidence_at(seq_pos)

            if not runs or runs[-1].frame != frame:
                cause = None
                if runs:
                    cause = _edit_between(
                        prev_seq, prev_mdl, prev_fpos, seq_pos, model_pos, cur_fpos,
                        pending, strand, mapping.feature.strand,
                    )
                    edits.append(cause)
                run_start = pending[0][0] if pending and runs else seq_pos
                runs.append(
                    FrameRun(
                        frame=frame,
                        seq_start=run_start,
                        mdl_start=model_pos,
                        cause=cause,
                    )
                )
            run = runs[-1]
            run.length += 1 + len(pending)
            for ins_pos, _ in pending:
                ins_conf = view.confidence_at(ins_pos)
                if ins_conf is not None:
                    run.confidences.append(ins_conf)
            if conf is not None:
                run.confidences.append(conf)
            run.seq_stop = seq_pos
            run.mdl_stop = model_pos
            pending = []
            prev_seq, prev_mdl, prev_fpos = seq_pos, model_pos, cur_fpos

    if runs:
        # trailing inserts belong to the last run
        runs[-1].length += len(pending)
        runs[0].truncated_5 = mapping.trunc5
        runs[-1].truncated_3 = mapping.trunc3
    return runs, edits


def _edit_between(
    prev_seq: int,
    prev_mdl: int,
    prev_fpos: int,
    seq_pos: int,
    model_pos: int,
    cur_fpos: int,
    pending: list[tuple[int, int]],
    seq_strand: Strand,
    mdl_strand: Strand,
) -> Edit:
    n_ins = len(pending)
    n_del = cur_fpos - prev_fpos - 1
    if n_ins > n_del:
        first, last = pending[0][0], pending[-1][0]
        # model position the insert follows in model order, as for InsertRun
        after = pending[0][1]
        return Edit(
            kind=EditKind.INSERT,
            seq=Interval(first, last, seq_strand),
            mdl=Interval(after, after, mdl_strand),
            length=n_ins,
        )
    step = 1 if mdl_strand is Strand.PLUS else -1
    return Edit(
        kind=EditKind.DELETE,
        seq=Interval(prev_seq, seq_pos, seq_strand),
        mdl=Interval(prev_mdl + step, model_pos - step, mdl_strand),
        length=n_del,
    )


# =============================================================================
# Frameshift detection
# =============================================================================


def find_frameshifts(
    view: AlignmentView,
    mapping: FeatureMapping,
    config: FrameConfig,
) -> list[FrameshiftCandidate]:
    """Find shifted regions of a CDS long enough to report.

    Args:
        view: Alignment view of the sequence.
        mapping: Mapping of the CDS onto the sequence.
        config: Frameshift thresholds.

    Returns:
        Candidates in feature order. Empty when the CDS has no indels.
    """
    runs, _ = frame_runs(view, mapping)
    if len(runs) <= 1:
        return []
    expected = expected_frame(mapping, view)
    seq_strand = view.seq_strand(mapping.feature.strand)
    mdl_strand = mapping.feature.strand

    # group runs into shifted regions: [first_idx, last_idx]
    regions: list[tuple[int, int]] = []
    i = 0
    while i < len(runs):
        if runs[i].frame == expected:
            i += 1
            continue
        start = i
        end = i
        j = i + 1
        while j < len(runs):
            run = runs[j]
            if run.frame == expected and (
                run.length >= config.min_restore_nt or j == len(runs) - 1
            ):
                break
            end = j
            j += 1
        regions.append((start, end))
        i = end + 1

    candidates = []
    for start, end in regions:
        region_runs = runs[start : end + 1]
        length = sum(r.length for r in region_runs)
        terminal = end == len(runs) - 1
        minimum = config.fst_min_nt_terminal if terminal else config.fst_min_nt_internal
        if length < minimum:
            continue

        confs = [c for r in region_runs for c in r.confidences]
        shifted_avgpp = sum(confs) / len(confs) if confs else None
        neighbour = None
        if start > 0:
            neighbour = runs[start - 1]
        elif not terminal:
            neighbour = runs[end + 1]
        exp_avgpp = neighbour.mean_confidence if neighbour is not None else None

        if not view.has_confidence:
            confidence = FrameshiftConfidence.UNKNOWN
        elif shifted_avgpp is not None and shifted_avgpp >= config.fst_high_thr and (
            exp_avgpp is None or exp_avgpp >= config.fst_high_exp_thr
        ):
            confidence = FrameshiftConfidence.HIGH
        elif shifted_avgpp is not None and shifted_avgpp >= config.fst_low_thr:
            confidence = FrameshiftConfidence.LOW
        else:
            logger.debug(
                f"Shifted region of {length} nt below low confidence threshold, skipped"
            )
            continue

        first, last = region_runs[0], region_runs[-1]
        candidates.append(
            FrameshiftCandidate(
                cause=first.cause,
                restore=None if terminal else runs[end + 1].cause,
                runs=tuple(runs),
                expected_frame=expected,
                seq=Interval(first.seq_start, last.seq_stop, seq_strand),
                mdl=Interval(first.mdl_start, last.mdl_stop, mdl_strand),
                length=length,
                shifted_avgpp=shifted_avgpp,
                exp_avgpp=exp_avgpp,
                confidence=confidence,
                terminal=terminal,
            )
        )
    return candidates


# =============================================================================
# Start / stop / length analysis
# =============================================================================


@attrs.define(frozen=True, slots=True)
class StopCodonHit:
    """Location of a stop codon relative to the predicted CDS stop.

    Attributes:
        codon: The stop codon.
        seq: Sequence interval of the codon.
        mdl: Model interval the codon aligns to, if it aligns.
        seq_shift: Predicted stop position minus actual stop position,
            in nucleotides along the CDS (negative when downstream).
        mdl_shift: Same distance in model positions, if available.
    """

    codon: str
    seq: Interval
    mdl: Interval | None
    seq_shift: int
    mdl_shift: int | None


@attrs.define(frozen=True, slots=True)
class CodonReport:
    """Result of start, stop and length checks on one CDS.

    Attributes:
        nucleotides: Predicted CDS nucleotides, 5' to 3'.
        positions: Sequence position of each nucleotide.
        offset: 0-based index of the first complete codon.
        start_codon: First codon, None if 5'-truncated or too short.
        start_valid: Whether ``start_codon`` is a valid start.
        stop_codon: Last codon, None if 3'-truncated or too short.
        stop_valid: Whether the last codon is an in-frame stop.
        length_ok: Whether the length is a multiple of 3 (None if truncated).
        early_stop: First in-frame stop 5' of the predicted stop.
        downstream_stop: First in-frame stop 3' of the predicted stop,
            searched only when the predicted stop is invalid.
        downstream_searched: Whether the downstream search ran.
    """

    nucleotides: str
    positions: tuple[int, ...]
    offset: int
    start_codon: str | None
    start_valid: bool | None
    stop_codon: str | None
    stop_valid: bool | None
    length_ok: bool | None
    early_stop: StopCodonHit | None
    downstream_stop: StopCodonHit | None
    downstream_searched: bool


def _codon_interval(positions: list[int] | tuple[int, ...], strand: Strand) -> Interval:
    return Interval(positions[0], positions[-1], strand)


def _codon_model_interval(
    view: AlignmentView, positions: list[int] | tuple[int, ...], strand: Strand
) -> Interval | None:
    mapped = [view.model_pos_for_seq_pos(p) for p in positions]
    if any(m is None for m in mapped):
        return None
    return Interval(mapped[0].model_pos, mapped[-1].model_pos, strand)


def analyze_codons(
    view: AlignmentView,
    mapping: FeatureMapping,
    transl_table: int = 1,
    atg_only: bool = False,
) -> CodonReport:
    """Check start codon, stop codon and length of a mapped CDS.

    Args:
        view: Alignment view of the sequence.
        mapping: Mapping of the CDS onto the sequence.
        transl_table: NCBI translation table of the model.
        atg_only: Only accept ATG as a start codon.

    Returns:
        CodonReport describing the checks.
    """
    seq_strand = view.seq_strand(mapping.feature.strand)
    mdl_strand = mapping.feature.strand
    positions: list[int] = []
    for seg in mapping.present:
        positions.extend(seg.seq.positions())
    nts = normalize(view.fetch_segments(mapping.seq_coords))
    trunc5, trunc3 = mapping.trunc5, mapping.trunc3

    # index of the first complete codon; nonzero only for 5'-truncated CDS
    offset = expected_frame(mapping, view) - 1

    start_codon = None
    start_valid = None
    if not trunc5 and len(nts) >= 3:
        start_codon = nts[:3]
        start_valid = is_start_codon(start_codon, transl_table, atg_only)

    length_ok = None
    if not trunc5 and not trunc3:
        length_ok = len(nts) % 3 == 0

    stop_codon = None
    stop_valid = None
    if not trunc3 and len(nts) >= 3:
        stop_codon = nts[-3:]
        stop_valid = (
            is_stop_codon(stop_codon, transl_table) and (len(nts) - offset) % 3 == 0
        )

    predicted_mdl = view.model_pos_for_seq_pos(positions[-1]) if positions else None

    def stop_hit(end_index: int, codon_positions: list[int], codon: str) -> StopCodonHit:
        mdl = _codon_model_interval(view, codon_positions, mdl_strand)
        mdl_shift = None
        if mdl is not None and predicted_mdl is not None:
            mdl_shift = abs(predicted_mdl.model_pos - mdl.end)
            if end_index > len(nts):
                mdl_shift = -mdl_shift
        return StopCodonHit(
            codon=codon,
            seq=_codon_interval(codon_positions, seq_strand),
            mdl=mdl,
            seq_shift=len(nts) - end_index,
            mdl_shift=mdl_shift,
        )

    early_stop = None
    for stop_end in find_inframe_stops(nts, transl_table, offset):
        if stop_end < len(nts) or trunc3:
            early_stop = stop_hit(
                stop_end, positions[stop_end - 3 : stop_end], nts[stop_end - 3 : stop_end]
            )
        break

    downstream_stop = None
    downstream_searched = False
    if not trunc3 and stop_valid is False and early_stop is None and positions:
        downstream_searched = True
        downstream_stop = _find_downstream_stop(
            view, nts, positions, offset, transl_table, seq_strand, stop_hit
        )

    return CodonReport(
        nucleotides=nts,
        positions=tuple(positions),
        offset=offset,
        start_codon=start_codon,
        start_valid=start_valid,
        stop_codon=stop_codon,
        stop_valid=stop_valid,
        length_ok=length_ok,
        early_stop=early_stop,
        downstream_stop=downstream_stop,
        downstream_searched=downstream_searched,
    )


def _find_downstream_stop(view, nts, positions, offset, transl_table, seq_strand, stop_hit):
    """First in-frame stop beyond the predicted CDS end, if any."""
    last = positions[-1]
    if seq_strand is Strand.PLUS:
        tail_positions = list(range(last + 1, view.seq_length + 1))
    else:
        tail_positions = list(range(last - 1, 0, -1))
    if not tail_positions:
        return None
    tail = normalize(
        view.fetch(Interval(tail_positions[0], tail_positions[-1], seq_strand))
    )
    extended = nts + tail
    all_positions = list(positions) + tail_positions
    for stop_end in find_inframe_stops(extended, transl_table, offset):
        if stop_end > len(nts):
            codon_positions = all_positions[stop_end - 3 : stop_end]
            return stop_hit(stop_end, codon_positions, extended[stop_end - 3 : stop_end])
    return None
