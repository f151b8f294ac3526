"""Alert codes and the immutable alert registry.

This module defines the closed set of alert codes the detectors can
raise, the static metadata of each code, and the alert record itself.

Every code has a fixed scope: sequence-level alerts never carry a
feature reference and feature-level alerts always do. Default fatality,
always-fatal status, expendable-feature demotion and the one-way
suppression rules are part of the registry and cannot be changed at run
time. Run-specific overrides live in :class:`viralqc.qc.policy.AlertPolicy`.

Detector Families:
    - COVERAGE: Hit-list topology and similarity coverage
    - CLASSIFICATION: Classification score margins
    - STRUCTURE: Annotation presence, deletions, peptide adjacency
    - CODONS: Start, stop, length and frameshift checks
    - BOUNDARIES: Boundary gaps, confidence and protein agreement
    - INDELS: Long insertions and deletions
    - AMBIGUITY: Ambiguous nucleotides at ends
    - PROPAGATION: Alerts inherited from a parent CDS
    - VERDICT: Alerts added while forming the verdict

Example:
    >>> from viralqc.qc.alerts import ALERT_REGISTRY, AlertCode
    >>> info = ALERT_REGISTRY[AlertCode.CDSSTOPN]
    >>> info.causes_failure
    True
    >>> ALERT_REGISTRY[AlertCode.MUTENDCD].suppressed_by
    frozenset({<AlertCode.CDSSTOPN: 'cdsstopn'>, ...})
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from enum import Enum
from types import MappingProxyType

import attrs

from viralqc.utils.intervals import BLANK, SegmentList


# =============================================================================
# Enums
# =============================================================================


class AlertScope(Enum):
    """Whether an alert applies to a whole sequence or to one feature."""

    SEQUENCE = "sequence"
    FEATURE = "feature"


class DetectorFamily(Enum):
    """Detector families, in report priority order."""

    COVERAGE = "coverage"
    CLASSIFICATION = "classification"
    STRUCTURE = "structure"
    CODONS = "codons"
    BOUNDARIES = "boundaries"
    INDELS = "indels"
    AMBIGUITY = "ambiguity"
    PROPAGATION = "propagation"
    VERDICT = "verdict"


class AlertCode(Enum):
    """All alert codes."""

    # sequence-level
    NOANNOTN = "noannotn"
    REVCOMPL = "revcompl"
    QSTSBGRP = "qstsbgrp"
    QSTGROUP = "qstgroup"
    INCSBGRP = "incsbgrp"
    INCGROUP = "incgroup"
    LOWCOVRG = "lowcovrg"
    INDFCLAS = "indfclas"
    LOWSCORE = "lowscore"
    BIASDSEQ = "biasdseq"
    DUPREGIN = "dupregin"
    DISCONTN = "discontn"
    INDFSTRN = "indfstrn"
    LOWSIM5S = "lowsim5s"
    LOWSIM3S = "lowsim3s"
    LOWSIMIS = "lowsimis"
    NMISCFTR = "nmiscftr"
    DELETINS = "deletins"
    AMBGNT5S = "ambgnt5s"
    AMBGNT3S = "ambgnt3s"
    UNEXDIVG = "unexdivg"
    NOFTRANN = "noftrann"
    FTSKIPFL = "ftskipfl"

    # feature-level
    MUTSTART = "mutstart"
    MUTENDCD = "mutendcd"
    MUTENDNS = "mutendns"
    MUTENDEX = "mutendex"
    UNEXLENG = "unexleng"
    CDSSTOPN = "cdsstopn"
    CDSSTOPP = "cdsstopp"
    FSTHICFT = "fsthicft"
    FSTHICFI = "fsthicfi"
    FSTLOCFT = "fstlocft"
    FSTLOCFI = "fstlocfi"
    FSTUKCFT = "fstukcft"
    FSTUKCFI = "fstukcfi"
    PEPTRANS = "peptrans"
    PEPADJCY = "pepadjcy"
    INDFANTP = "indfantp"
    INDFANTN = "indfantn"
    INDF5GAP = "indf5gap"
    INDF5LCC = "indf5lcc"
    INDF5LCN = "indf5lcn"
    INDF5PLG = "indf5plg"
    INDF5PST = "indf5pst"
    INDF3GAP = "indf3gap"
    INDF3LCC = "indf3lcc"
    INDF3LCN = "indf3lcn"
    INDF3PLG = "indf3plg"
    INDF3PST = "indf3pst"
    INDFSTRP = "indfstrp"
    INSERTNP = "insertnp"
    INSERTNN = "insertnn"
    DELETINP = "deletinp"
    DELETINN = "deletinn"
    DELETINF = "deletinf"
    LOWSIM5C = "lowsim5c"
    LOWSIM5N = "lowsim5n"
    LOWSIM3C = "lowsim3c"
    LOWSIM3N = "lowsim3n"
    LOWSIMIC = "lowsimic"
    LOWSIMIN = "lowsimin"
    AMBGNT5F = "ambgnt5f"
    AMBGNT3F = "ambgnt3f"
    AMBGNT5C = "ambgnt5c"
    AMBGNT3C = "ambgnt3c"
    AMBGCD5C = "ambgcd5c"
    AMBGCD3C = "ambgcd3c"

    @classmethod
    def parse(cls, text: str) -> "AlertCode":
        """Look up a code by its name (case-insensitive).

        Raises:
            ValueError: If the code is unknown.
        """
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown alert code: {text!r}") from None


# =============================================================================
# AlertInfo Data Class
# =============================================================================


@attrs.define(frozen=True)
class AlertInfo:
    """Static metadata for one alert code.

    Attributes:
        code: The alert code.
        scope: Sequence or feature level.
        family: Detector family that raises it.
        short_desc: Short upper-case description used in reports.
        long_desc: One-line explanation.
        always_fatal: Always fails the sequence; cannot be overridden.
        causes_failure: Fails the sequence by default.
        misc_not_failure: On an expendable feature, demote the feature
            instead of failing the sequence (default).
        prevents_annotation: No feature annotation is possible.
        suppressed_by: Codes whose presence on the same feature (or
            sequence) removes this alert from the reported list.
        order: Position in the registry, used for report ordering.
    """

    code: AlertCode
    scope: AlertScope
    family: DetectorFamily
    short_desc: str
    long_desc: str
    always_fatal: bool = False
    causes_failure: bool = False
    misc_not_failure: bool = False
    prevents_annotation: bool = False
    suppressed_by: frozenset[AlertCode] = frozenset()
    order: int = 0

    @property
    def is_feature_level(self) -> bool:
        return self.scope is AlertScope.FEATURE

    def __hash__(self) -> int:
        return hash(self.code)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AlertInfo):
            return False
        return self.code == other.code


# =============================================================================
# Registry construction
# =============================================================================

_S = AlertScope.SEQUENCE
_F = AlertScope.FEATURE
_FAM = DetectorFamily

# code, scope, family, short, long, always_fatal, causes_failure, prevents_annotation
_DEFINITIONS = [
    # -------------------------------------------------------------------------
    # Sequence-level alerts
    # -------------------------------------------------------------------------
    (AlertCode.NOANNOTN, _S, _FAM.COVERAGE, "NO_ANNOTATION",
     "no significant similarity detected", True, True, True),
    (AlertCode.REVCOMPL, _S, _FAM.COVERAGE, "REVCOMPLEM",
     "sequence appears to be reverse complemented", True, True, True),
    (AlertCode.QSTSBGRP, _S, _FAM.CLASSIFICATION, "QUESTIONABLE_SPECIFIED_SUBGROUP",
     "best overall model is not from specified subgroup", False, False, False),
    (AlertCode.QSTGROUP, _S, _FAM.CLASSIFICATION, "QUESTIONABLE_SPECIFIED_GROUP",
     "best overall model is not from specified group", False, False, False),
    (AlertCode.INCSBGRP, _S, _FAM.CLASSIFICATION, "INCORRECT_SPECIFIED_SUBGROUP",
     "score difference too large between best overall model and best specified subgroup model",
     False, True, False),
    (AlertCode.INCGROUP, _S, _FAM.CLASSIFICATION, "INCORRECT_SPECIFIED_GROUP",
     "score difference too large between best overall model and best specified group model",
     False, True, False),
    (AlertCode.LOWCOVRG, _S, _FAM.COVERAGE, "LOW_COVERAGE",
     "low sequence fraction with significant similarity to homology model", False, True, False),
    (AlertCode.INDFCLAS, _S, _FAM.CLASSIFICATION, "INDEFINITE_CLASSIFICATION",
     "low score difference between best overall model and second best model (not in best model's subgroup)",
     False, False, False),
    (AlertCode.LOWSCORE, _S, _FAM.CLASSIFICATION, "LOW_SCORE",
     "score to homology model below low threshold", False, False, False),
    (AlertCode.BIASDSEQ, _S, _FAM.CLASSIFICATION, "BIASED_SEQUENCE",
     "high fraction of score attributed to biased sequence composition", False, False, False),
    (AlertCode.DUPREGIN, _S, _FAM.COVERAGE, "DUPLICATE_REGIONS",
     "similarity to a model region occurs more than once", False, True, False),
    (AlertCode.DISCONTN, _S, _FAM.COVERAGE, "DISCONTINUOUS_SIMILARITY",
     "not all hits are in the same order in the sequence and the homology model", False, True, False),
    (AlertCode.INDFSTRN, _S, _FAM.COVERAGE, "INDEFINITE_STRAND",
     "significant similarity detected on both strands", False, True, False),
    (AlertCode.LOWSIM5S, _S, _FAM.COVERAGE, "LOW_SIMILARITY_START",
     "significant similarity not detected at 5' end of the sequence", False, True, False),
    (AlertCode.LOWSIM3S, _S, _FAM.COVERAGE, "LOW_SIMILARITY_END",
     "significant similarity not detected at 3' end of the sequence", False, True, False),
    (AlertCode.LOWSIMIS, _S, _FAM.COVERAGE, "LOW_SIMILARITY",
     "internal region without significant similarity", False, True, False),
    (AlertCode.NMISCFTR, _S, _FAM.VERDICT, "TOO_MANY_MISC_FEATURES",
     "too many features are reported as misc_features", False, True, False),
    (AlertCode.DELETINS, _S, _FAM.STRUCTURE, "DELETION_OF_FEATURE",
     "internal deletion of a complete feature", False, True, False),
    (AlertCode.AMBGNT5S, _S, _FAM.AMBIGUITY, "N_AT_START",
     "first nucleotide of the sequence is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.AMBGNT3S, _S, _FAM.AMBIGUITY, "N_AT_END",
     "final nucleotide of the sequence is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.UNEXDIVG, _S, _FAM.STRUCTURE, "UNEXPECTED_DIVERGENCE",
     "sequence is too divergent to confidently assign nucleotide-based annotation", True, True, True),
    (AlertCode.NOFTRANN, _S, _FAM.STRUCTURE, "NO_FEATURES_ANNOTATED",
     "sequence similarity to homology model does not overlap with any features", True, True, False),
    (AlertCode.FTSKIPFL, _S, _FAM.VERDICT, "UNREPORTED_FEATURE_PROBLEM",
     "only fatal alerts are for features not reported", True, True, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: codons
    # -------------------------------------------------------------------------
    (AlertCode.MUTSTART, _F, _FAM.CODONS, "MUTATION_AT_START",
     "expected start codon could not be identified", False, True, False),
    (AlertCode.MUTENDCD, _F, _FAM.CODONS, "MUTATION_AT_END",
     "expected stop codon could not be identified, predicted CDS stop by homology is invalid",
     False, True, False),
    (AlertCode.MUTENDNS, _F, _FAM.CODONS, "MUTATION_AT_END",
     "expected stop codon could not be identified, no in-frame stop codon exists 3' of predicted start codon",
     False, True, False),
    (AlertCode.MUTENDEX, _F, _FAM.CODONS, "MUTATION_AT_END",
     "expected stop codon could not be identified, first in-frame stop codon exists 3' of predicted stop position",
     False, True, False),
    (AlertCode.UNEXLENG, _F, _FAM.CODONS, "UNEXPECTED_LENGTH",
     "length of complete coding (CDS or mat_peptide) feature is not a multiple of 3", False, True, False),
    (AlertCode.CDSSTOPN, _F, _FAM.CODONS, "CDS_HAS_STOP_CODON",
     "in-frame stop codon exists 5' of stop position predicted by homology to reference",
     False, True, False),
    (AlertCode.CDSSTOPP, _F, _FAM.BOUNDARIES, "CDS_HAS_STOP_CODON",
     "stop codon in protein-based alignment", False, True, False),
    (AlertCode.FSTHICFT, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT_HIGH_CONF",
     "high confidence possible frameshift in CDS (frame not restored before end)", False, True, False),
    (AlertCode.FSTHICFI, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT_HIGH_CONF",
     "high confidence possible frameshift in CDS (frame restored before end)", False, True, False),
    (AlertCode.FSTLOCFT, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT_LOW_CONF",
     "low confidence possible frameshift in CDS (frame not restored before end)", False, False, False),
    (AlertCode.FSTLOCFI, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT_LOW_CONF",
     "low confidence possible frameshift in CDS (frame restored before end)", False, False, False),
    (AlertCode.FSTUKCFT, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT",
     "possible frameshift in CDS (frame not restored before end)", False, True, False),
    (AlertCode.FSTUKCFI, _F, _FAM.CODONS, "POSSIBLE_FRAMESHIFT",
     "possible frameshift in CDS (frame restored before end)", False, True, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: propagation and structure
    # -------------------------------------------------------------------------
    (AlertCode.PEPTRANS, _F, _FAM.PROPAGATION, "PEPTIDE_TRANSLATION_PROBLEM",
     "mat_peptide may not be translated because its parent CDS has a problem", False, True, False),
    (AlertCode.PEPADJCY, _F, _FAM.STRUCTURE, "PEPTIDE_ADJACENCY_PROBLEM",
     "predictions of two mat_peptides expected to be adjacent are not adjacent", False, True, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: boundaries
    # -------------------------------------------------------------------------
    (AlertCode.INDFANTP, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION",
     "protein-based search identifies CDS not identified in nucleotide-based search", False, True, False),
    (AlertCode.INDFANTN, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION",
     "nucleotide-based search identifies CDS not identified in protein-based search", False, False, False),
    (AlertCode.INDF5GAP, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_START",
     "alignment to homology model is a gap at 5' boundary", False, True, False),
    (AlertCode.INDF5LCC, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_START",
     "alignment to homology model has low confidence at 5' boundary for feature that is or matches a CDS",
     False, True, False),
    (AlertCode.INDF5LCN, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_START",
     "alignment to homology model has low confidence at 5' boundary for feature that does not match a CDS",
     False, False, False),
    (AlertCode.INDF5PLG, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_START",
     "protein-based alignment extends past nucleotide-based alignment at 5' end", False, True, False),
    (AlertCode.INDF5PST, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_START",
     "protein-based alignment does not extend close enough to nucleotide-based alignment 5' endpoint",
     False, True, False),
    (AlertCode.INDF3GAP, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_END",
     "alignment to homology model is a gap at 3' boundary", False, True, False),
    (AlertCode.INDF3LCC, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_END",
     "alignment to homology model has low confidence at 3' boundary for feature that is or matches a CDS",
     False, True, False),
    (AlertCode.INDF3LCN, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_END",
     "alignment to homology model has low confidence at 3' boundary for feature that does not match a CDS",
     False, False, False),
    (AlertCode.INDF3PLG, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_END",
     "protein-based alignment extends past nucleotide-based alignment at 3' end", False, True, False),
    (AlertCode.INDF3PST, _F, _FAM.BOUNDARIES, "INDEFINITE_ANNOTATION_END",
     "protein-based alignment does not extend close enough to nucleotide-based alignment 3' endpoint",
     False, True, False),
    (AlertCode.INDFSTRP, _F, _FAM.BOUNDARIES, "INDEFINITE_STRAND",
     "strand mismatch between protein-based and nucleotide-based predictions", False, True, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: indels
    # -------------------------------------------------------------------------
    (AlertCode.INSERTNP, _F, _FAM.INDELS, "INSERTION_OF_NT",
     "too large of an insertion in protein-based alignment", False, True, False),
    (AlertCode.INSERTNN, _F, _FAM.INDELS, "INSERTION_OF_NT",
     "too large of an insertion in nucleotide-based alignment of CDS feature", False, False, False),
    (AlertCode.DELETINP, _F, _FAM.INDELS, "DELETION_OF_NT",
     "too large of a deletion in protein-based alignment", False, True, False),
    (AlertCode.DELETINN, _F, _FAM.INDELS, "DELETION_OF_NT",
     "too large of a deletion in nucleotide-based alignment of CDS feature", False, False, False),
    (AlertCode.DELETINF, _F, _FAM.STRUCTURE, "DELETION_OF_FEATURE_SECTION",
     "internal deletion of a complete section in a multi-section feature with other section(s) annotated",
     False, True, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: low similarity
    # -------------------------------------------------------------------------
    (AlertCode.LOWSIM5C, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY_START",
     "region overlapping annotated feature that is or matches a CDS at 5' end of sequence lacks significant similarity",
     False, True, False),
    (AlertCode.LOWSIM5N, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY_START",
     "region overlapping annotated feature that does not match a CDS at 5' end of sequence lacks significant similarity",
     False, False, False),
    (AlertCode.LOWSIM3C, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY_END",
     "region overlapping annotated feature that is or matches a CDS at 3' end of sequence lacks significant similarity",
     False, True, False),
    (AlertCode.LOWSIM3N, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY_END",
     "region overlapping annotated feature that does not match a CDS at 3' end of sequence lacks significant similarity",
     False, False, False),
    (AlertCode.LOWSIMIC, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY",
     "region overlapping annotated feature that is or matches a CDS lacks significant similarity",
     False, True, False),
    (AlertCode.LOWSIMIN, _F, _FAM.COVERAGE, "LOW_FEATURE_SIMILARITY",
     "region overlapping annotated feature that does not match a CDS lacks significant similarity",
     False, False, False),
    # -------------------------------------------------------------------------
    # Feature-level alerts: ambiguity
    # -------------------------------------------------------------------------
    (AlertCode.AMBGNT5F, _F, _FAM.AMBIGUITY, "N_AT_FEATURE_START",
     "first nucleotide of non-CDS feature is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.AMBGNT3F, _F, _FAM.AMBIGUITY, "N_AT_FEATURE_END",
     "final nucleotide of non-CDS feature is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.AMBGNT5C, _F, _FAM.AMBIGUITY, "N_AT_CDS_START",
     "first nucleotide of CDS is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.AMBGNT3C, _F, _FAM.AMBIGUITY, "N_AT_CDS_END",
     "final nucleotide of CDS is an N or other ambiguous nucleotide", False, False, False),
    (AlertCode.AMBGCD5C, _F, _FAM.AMBIGUITY, "AMBIGUITY_IN_START_CODON",
     "5' complete CDS starts with canonical nt but includes ambiguous nt in its start codon",
     False, False, False),
    (AlertCode.AMBGCD3C, _F, _FAM.AMBIGUITY, "AMBIGUITY_IN_STOP_CODON",
     "3' complete CDS ends with canonical nt but includes ambiguous nt in its stop codon",
     False, False, False),
]

# one-way rules: the key is removed from reports when any listed code co-occurs
_SUPPRESSION_RULES = {
    AlertCode.MUTENDCD: frozenset(
        {AlertCode.CDSSTOPN, AlertCode.MUTENDEX, AlertCode.MUTENDNS}
    ),
    AlertCode.NOFTRANN: frozenset({AlertCode.UNEXDIVG}),
}

# feature-level codes that never demote an expendable feature by default
_NOT_DEMOTABLE = frozenset({AlertCode.INDFANTP})


def _build_registry() -> Mapping[AlertCode, AlertInfo]:
    """Build and validate the registry. Raises ValueError on inconsistency."""
    registry: dict[AlertCode, AlertInfo] = {}
    for order, (code, scope, family, short, long_, always, fails, prevents) in enumerate(
        _DEFINITIONS
    ):
        if code in registry:
            raise ValueError(f"Duplicate alert code in registry: {code.value}")
        if always and not fails:
            raise ValueError(f"{code.value}: always-fatal code must cause failure")
        if prevents and scope is not AlertScope.SEQUENCE:
            raise ValueError(f"{code.value}: only sequence-level codes may prevent annotation")
        registry[code] = AlertInfo(
            code=code,
            scope=scope,
            family=family,
            short_desc=short,
            long_desc=long_,
            always_fatal=always,
            causes_failure=fails,
            misc_not_failure=scope is AlertScope.FEATURE and code not in _NOT_DEMOTABLE,
            prevents_annotation=prevents,
            suppressed_by=_SUPPRESSION_RULES.get(code, frozenset()),
            order=order,
        )

    missing = set(AlertCode) - set(registry)
    if missing:
        raise ValueError(f"Alert codes missing from registry: {sorted(c.value for c in missing)}")
    for code, suppressors in _SUPPRESSION_RULES.items():
        if code in suppressors:
            raise ValueError(f"{code.value} cannot suppress itself")
        for other in suppressors:
            if registry[other].scope is not registry[code].scope:
                raise ValueError(
                    f"{other.value} cannot suppress {code.value}: scopes differ"
                )
            if code in _SUPPRESSION_RULES.get(other, frozenset()):
                raise ValueError(
                    f"Suppression between {code.value} and {other.value} is mutual"
                )
    return MappingProxyType(registry)


ALERT_REGISTRY: Mapping[AlertCode, AlertInfo] = _build_registry()


def get_info(code: AlertCode) -> AlertInfo:
    return ALERT_REGISTRY[code]


def codes_in_order() -> Iterator[AlertCode]:
    """Codes in registry order."""
    return iter(sorted(ALERT_REGISTRY, key=lambda c: ALERT_REGISTRY[c].order))


def report_order(code: AlertCode) -> tuple[int, int]:
    """Sort key: detector family priority, then registry order."""
    info = ALERT_REGISTRY[code]
    return list(DetectorFamily).index(info.family), info.order


# =============================================================================
# Alert Data Classes
# =============================================================================


def _to_coords(value: SegmentList | None) -> SegmentList:
    return BLANK if value is None else value


@attrs.define(frozen=True)
class Alert:
    """One alert instance raised by a detector.

    Attributes:
        sequence_id: Sequence the alert applies to.
        model_id: Model the sequence was annotated with.
        code: Alert code.
        feature_ref: Feature index, required for feature-level codes and
            forbidden for sequence-level codes.
        seq_coords: Sequence coordinates (blank if undefined).
        mdl_coords: Model coordinates (blank if undefined).
        detail: Detector-specific detail string.
        emission: Position in the order the alert was raised.

    Raises:
        ValueError: If ``feature_ref`` does not match the code's scope.
    """

    sequence_id: str
    model_id: str
    code: AlertCode
    feature_ref: int | None = None
    seq_coords: SegmentList = attrs.field(default=BLANK, converter=_to_coords)
    mdl_coords: SegmentList = attrs.field(default=BLANK, converter=_to_coords)
    detail: str = ""
    emission: int = attrs.field(default=0, eq=False)

    def __attrs_post_init__(self) -> None:
        info = ALERT_REGISTRY[self.code]
        if info.is_feature_level and self.feature_ref is None:
            raise ValueError(f"{self.code.value} is feature-level and needs a feature_ref")
        if not info.is_feature_level and self.feature_ref is not None:
            raise ValueError(f"{self.code.value} is sequence-level and takes no feature_ref")

    @property
    def info(self) -> AlertInfo:
        return ALERT_REGISTRY[self.code]

    @property
    def is_sequence_level(self) -> bool:
        return self.feature_ref is None


class AlertStatus(Enum):
    """Resolved status of an alert instance."""

    FATAL = "fatal"
    NON_FATAL = "non_fatal"


@attrs.define(frozen=True)
class ResolvedAlert:
    """An alert after policy resolution.

    Attributes:
        alert: The raised alert.
        status: FATAL or NON_FATAL after overrides and demotion.
        demotes_feature: The alert was fatal but its expendable feature is
            demoted instead.
        suppressed: Dropped from the reported list by a co-occurring,
            more specific alert.
    """

    alert: Alert
    status: AlertStatus
    demotes_feature: bool = False
    suppressed: bool = False

    @property
    def code(self) -> AlertCode:
        return self.alert.code

    @property
    def is_fatal(self) -> bool:
        return self.status is AlertStatus.FATAL
