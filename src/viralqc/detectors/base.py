"""Shared detector infrastructure.

Every detector is a pure function of one sequence's evidence: it reads a
:class:`DetectionContext` and returns a list of alerts, never looking at
the output of other detectors. Detectors must be total. When evidence
they need is missing (no alignment, no confidence track, protein stage
not run) they return no alert rather than a partial one.

Example:
    >>> ctx = DetectionContext.from_unit(unit, feature_map, DetectorConfig())
    >>> alerts = CoverageDetector().detect(ctx)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import attrs

from viralqc.core.alignment import AlignmentView, FeatureMapping
from viralqc.core.evidence import (
    ClassificationScores,
    Hit,
    ProteinPrediction,
    SequenceUnit,
)
from viralqc.core.features import Feature, FeatureMap
from viralqc.core.frames import FrameConfig
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import BLANK, Interval, SegmentList

logger = logging.getLogger(__name__)


class DetectorInvariantError(RuntimeError):
    """Internal inconsistency found while running detectors.

    Aborts processing of the current sequence only.
    """

    pass


# =============================================================================
# Default thresholds
# =============================================================================

DEFAULT_LOWCOV = 0.9
DEFAULT_DUPREG_MIN_OVERLAP = 20
DEFAULT_DUPREG_MIN_SCORE = 10.0
DEFAULT_INDEFSTR = 25.0
DEFAULT_LOWSIM_TERM = 15
DEFAULT_LOWSIM_INT = 1
DEFAULT_INDEFCLAS = 0.03
DEFAULT_INCSPEC = 0.2
DEFAULT_LOWSC = 0.3
DEFAULT_BIASFRACT = 0.25
DEFAULT_INDF_THR = 0.8
DEFAULT_INDF_THR_MP = 0.6
DEFAULT_XALNTOL = 5
DEFAULT_XLONESCORE = 80.0
DEFAULT_XMAXINS = 27
DEFAULT_XMAXDEL = 27
DEFAULT_NMAXINS = 27
DEFAULT_NMAXDEL = 27


# =============================================================================
# Configuration
# =============================================================================


@attrs.define(frozen=True)
class DetectorConfig:
    """Thresholds and toggles for every detector family.

    Attributes:
        lowcov: Minimum fraction of the sequence covered by hits.
        dupreg_min_overlap: Model overlap between two hits above which the
            region counts as duplicated.
        dupreg_min_score: Minimum score of both hits for a duplication.
        indefstr: Minimum score of a hit on the other strand.
        lowsim_term: Minimum length of an uncovered region at a sequence end.
        lowsim_int: Minimum length of an internal uncovered region.
        indefclas: Minimum per-nucleotide score margin to the second model.
        incspec: Maximum per-nucleotide score margin to the best model of
            the expected group or subgroup.
        lowsc: Minimum per-nucleotide score to the best model.
        biasfract: Maximum fraction of the score due to composition bias.
        expected_group: Group every sequence is expected to belong to.
        expected_subgroup: Subgroup every sequence is expected to belong to.
        indf_thr: Minimum boundary confidence (non-mat_peptide features).
        indf_thr_mp: Minimum boundary confidence for mat_peptides.
        xalntol: Tolerance in nt between protein and nucleotide boundaries.
        xlonescore: Minimum score of a protein-only CDS prediction.
        xmaxins: Maximum insertion length in the protein alignment.
        xmaxdel: Maximum deletion length in the protein alignment.
        nmaxins: Maximum insertion length in the nucleotide alignment.
        nmaxdel: Maximum deletion length in the nucleotide alignment.
        atg_only: Only accept ATG start codons.
        frames: Frameshift thresholds.
        run_coverage: Run the coverage detectors.
        run_classification: Run the classification detectors.
        run_structure: Run the structure detectors.
        run_codons: Run the codon and frameshift detectors.
        run_boundaries: Run the boundary detectors.
        run_indels: Run the indel detectors.
        run_ambiguity: Run the ambiguity detectors.
    """

    lowcov: float = DEFAULT_LOWCOV
    dupreg_min_overlap: int = DEFAULT_DUPREG_MIN_OVERLAP
    dupreg_min_score: float = DEFAULT_DUPREG_MIN_SCORE
    indefstr: float = DEFAULT_INDEFSTR
    lowsim_term: int = DEFAULT_LOWSIM_TERM
    lowsim_int: int = DEFAULT_LOWSIM_INT
    indefclas: float = DEFAULT_INDEFCLAS
    incspec: float = DEFAULT_INCSPEC
    lowsc: float = DEFAULT_LOWSC
    biasfract: float = DEFAULT_BIASFRACT
    expected_group: str | None = None
    expected_subgroup: str | None = None
    indf_thr: float = DEFAULT_INDF_THR
    indf_thr_mp: float = DEFAULT_INDF_THR_MP
    xalntol: int = DEFAULT_XALNTOL
    xlonescore: float = DEFAULT_XLONESCORE
    xmaxins: int = DEFAULT_XMAXINS
    xmaxdel: int = DEFAULT_XMAXDEL
    nmaxins: int = DEFAULT_NMAXINS
    nmaxdel: int = DEFAULT_NMAXDEL
    atg_only: bool = False
    frames: FrameConfig = attrs.Factory(FrameConfig)
    run_coverage: bool = True
    run_classification: bool = True
    run_structure: bool = True
    run_codons: bool = True
    run_boundaries: bool = True
    run_indels: bool = True
    run_ambiguity: bool = True

    def validate(self) -> None:
        """Validate thresholds.

        Raises:
            ValueError: If a threshold is out of range.
        """
        for name in ("lowcov", "indf_thr", "indf_thr_mp", "biasfract"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        for name in (
            "dupreg_min_overlap",
            "lowsim_term",
            "lowsim_int",
            "xalntol",
            "xmaxins",
            "xmaxdel",
            "nmaxins",
            "nmaxdel",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        for name in ("indefclas", "incspec", "lowsc", "dupreg_min_score", "indefstr", "xlonescore"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        self.frames.validate()

    def is_enabled(self, family: DetectorFamily) -> bool:
        return getattr(self, f"run_{family.value}", True)


# =============================================================================
# Detection context
# =============================================================================


@attrs.define
class DetectionContext:
    """Read-only evidence for one sequence, shared by all detectors.

    Feature mappings are computed on first use and cached for the
    lifetime of the context (one sequence).

    Attributes:
        sequence_id: Sequence identifier.
        sequence: Sequence nucleotides.
        feature_map: Feature map of the sequence's model.
        view: Alignment view, None when no alignment is available.
        hits: Coverage search hits ordered by sequence position.
        protein_predictions: Protein predictions, None when the protein
            stage did not run.
        classification: Classification scores, if available.
        config: Detector thresholds.
    """

    sequence_id: str
    sequence: str
    feature_map: FeatureMap
    view: AlignmentView | None
    hits: Sequence[Hit]
    protein_predictions: Sequence[ProteinPrediction] | None
    classification: ClassificationScores | None
    config: DetectorConfig
    _mappings: dict[int, FeatureMapping] = attrs.field(factory=dict, repr=False)

    @classmethod
    def from_unit(
        cls,
        unit: SequenceUnit,
        feature_map: FeatureMap,
        config: DetectorConfig,
        view: AlignmentView | None = None,
    ) -> "DetectionContext":
        """Build the context for a sequence unit.

        The alignment view is built from the unit unless one is given.
        """
        if view is None and unit.alignment is not None:
            view = AlignmentView(
                unit.alignment,
                unit.sequence,
                feature_map.model_length,
                unit.alignment_strand,
            )
        hits = sorted(unit.hits, key=lambda h: (h.seq.low, h.seq.high))
        return cls(
            sequence_id=unit.sequence_id,
            sequence=unit.sequence,
            feature_map=feature_map,
            view=view,
            hits=hits,
            protein_predictions=unit.protein_predictions,
            classification=unit.classification,
            config=config,
        )

    @property
    def model_id(self) -> str:
        return self.feature_map.model_id

    @property
    def seq_length(self) -> int:
        return len(self.sequence)

    def feature(self, index: int) -> Feature:
        """Feature by index.

        Raises:
            DetectorInvariantError: If the index is not in the feature map.
        """
        if not 0 <= index < len(self.feature_map):
            raise DetectorInvariantError(
                f"{self.sequence_id}: feature index {index} not in model {self.model_id}"
            )
        return self.feature_map[index]

    def mapping(self, index: int) -> FeatureMapping | None:
        """Mapping of a feature onto the sequence, None without an alignment."""
        if self.view is None:
            return None
        if index not in self._mappings:
            self._mappings[index] = self.view.map_feature(self.feature(index))
        return self._mappings[index]

    def annotated(self) -> list[tuple[Feature, FeatureMapping]]:
        """Features with at least one aligned segment, in index order."""
        if self.view is None:
            return []
        found = []
        for feature in self.feature_map:
            mapping = self.mapping(feature.index)
            if mapping.is_annotated:
                found.append((feature, mapping))
        return found

    def model_coords_for(self, seq: Interval) -> SegmentList:
        """Model interval aligned to the ends of a sequence interval, or blank."""
        if self.view is None:
            return BLANK
        first = self.view.model_pos_for_seq_pos(seq.start)
        last = self.view.model_pos_for_seq_pos(seq.end)
        if first is None or last is None:
            return BLANK
        start = first.model_pos + (1 if first.is_insert else 0)
        end = last.model_pos
        if start > end or start < 1:
            return BLANK
        return SegmentList.of(Interval(start, end))

    def alert(
        self,
        code: AlertCode,
        feature: Feature | int | None = None,
        seq_coords: SegmentList | Interval | None = None,
        mdl_coords: SegmentList | Interval | None = None,
        detail: str = "",
    ) -> Alert:
        """Create an alert for this sequence."""
        if isinstance(feature, Feature):
            feature = feature.index
        if isinstance(seq_coords, Interval):
            seq_coords = SegmentList.of(seq_coords)
        if isinstance(mdl_coords, Interval):
            mdl_coords = SegmentList.of(mdl_coords)
        return Alert(
            sequence_id=self.sequence_id,
            model_id=self.model_id,
            code=code,
            feature_ref=feature,
            seq_coords=seq_coords,
            mdl_coords=mdl_coords,
            detail=detail,
        )


# =============================================================================
# Detector base class
# =============================================================================


class Detector:
    """Base class for a detector family.

    Subclasses set ``family`` and implement :meth:`detect`.
    """

    family: DetectorFamily

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(family={self.family.value})"
