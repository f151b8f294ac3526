"""Per-sequence evidence supplied by upstream pipeline stages.

The engine does not run classification, coverage search, alignment or
protein search itself. It consumes their results through the records in
this module, bundled per sequence in a :class:`SequenceUnit`.

Example:
    >>> from viralqc.core.evidence import Hit, SequenceUnit
    >>> from viralqc.utils.intervals import Interval
    >>> hit = Hit(seq=Interval(1, 50), mdl=Interval(1, 50), bit_score=80.0)
    >>> unit = SequenceUnit("seq1", "toy", "ACGT" * 12 + "AC", hits=[hit])
"""

from __future__ import annotations

from collections.abc import Sequence

import attrs

from viralqc.core.alignment import AlignmentColumn
from viralqc.utils.intervals import Interval, Strand


# =============================================================================
# Coverage search
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Hit:
    """A local alignment between a sequence region and a model region.

    Attributes:
        seq: Sequence interval; its strand is the strand of the hit.
        mdl: Model interval.
        bit_score: Hit score in bits.
        bias_score: Composition bias correction in bits.
    """

    seq: Interval
    mdl: Interval
    bit_score: float
    bias_score: float = 0.0

    @property
    def strand(self) -> Strand:
        return self.seq.strand


# =============================================================================
# Protein search
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ProteinIndel:
    """Largest insertion or deletion in a protein-based alignment.

    Attributes:
        seq_pos: Sequence position of the indel.
        mdl_pos: Position in the reference protein (amino acids).
        length: Length in nucleotides.
    """

    seq_pos: int
    mdl_pos: int
    length: int


@attrs.define(frozen=True, slots=True)
class ProteinPrediction:
    """Protein-homology prediction for one CDS.

    Attributes:
        feature_index: Index of the CDS in the model's feature map.
        seq: Predicted nucleotide interval of the protein alignment.
        score: Raw score of the protein hit.
        max_insert: Largest insertion in the protein alignment.
        max_delete: Largest deletion in the protein alignment.
        stop_pos: Sequence position of the first nucleotide of a stop
            codon inside the protein alignment, if any.
    """

    feature_index: int
    seq: Interval
    score: float
    max_insert: ProteinIndel | None = None
    max_delete: ProteinIndel | None = None
    stop_pos: int | None = None

    @property
    def strand(self) -> Strand:
        return self.seq.strand


# =============================================================================
# Classification
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ModelScore:
    """Classification score of a sequence against one model."""

    model_id: str
    score: float
    bias: float = 0.0
    group: str | None = None
    subgroup: str | None = None


@attrs.define(frozen=True, slots=True)
class ClassificationScores:
    """Scores from the classification stage for one sequence.

    Attributes:
        best: Best-scoring model overall.
        second: Best-scoring model outside the best model's subgroup.
        best_in_group: Best-scoring model of the expected group, if one
            was requested and any model of that group scored.
        best_in_subgroup: Same for the expected subgroup.
    """

    best: ModelScore
    second: ModelScore | None = None
    best_in_group: ModelScore | None = None
    best_in_subgroup: ModelScore | None = None


# =============================================================================
# Processing unit
# =============================================================================


@attrs.define(frozen=True)
class SequenceUnit:
    """Everything the engine needs to judge one sequence.

    ``alignment`` is None when no alignment could be produced.
    ``protein_predictions`` is None when the protein stage did not run,
    and an empty list when it ran and found nothing.
    """

    sequence_id: str
    model_id: str
    sequence: str
    alignment: Sequence[AlignmentColumn] | None = None
    alignment_strand: Strand = Strand.PLUS
    hits: Sequence[Hit] = attrs.Factory(list)
    protein_predictions: Sequence[ProteinPrediction] | None = None
    classification: ClassificationScores | None = None

    @property
    def length(self) -> int:
        return len(self.sequence)
