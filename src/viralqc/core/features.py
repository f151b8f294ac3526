"""Reference model feature maps.

This module defines the feature annotation carried by a reference model
(genes, CDS, mature peptides) and the validated, immutable container
detectors query. Features are stored in an append-only list and refer to
their parent by index; a parent must always appear earlier than its
children, so the parent graph is acyclic by construction.

Feature Kinds:
    - GENE: Gene region
    - CDS: Coding sequence
    - MAT_PEPTIDE: Mature peptide cleaved from a parent CDS
    - OTHER: Any other annotated region

Example:
    >>> from viralqc.core.features import Feature, FeatureKind, FeatureMap
    >>> from viralqc.utils.intervals import SegmentList
    >>> fmap = FeatureMap(
    ...     model_id="toy",
    ...     model_length=50,
    ...     features=[
    ...         Feature(0, FeatureKind.CDS, SegmentList.parse("11..31:+")),
    ...         Feature(1, FeatureKind.MAT_PEPTIDE, SegmentList.parse("11..22:+"), parent=0),
    ...     ],
    ... )
    >>> [f.index for f in fmap.children_of(0)]
    [1]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from enum import Enum

import attrs

from viralqc.utils.intervals import Interval, SegmentList, Strand
from viralqc.utils.sequences import SUPPORTED_TABLES

logger = logging.getLogger(__name__)


class FeatureMapError(ValueError):
    """Raised when a model's feature map is malformed.

    This is a configuration error: the model cannot be loaded.
    """

    pass


# =============================================================================
# Enums
# =============================================================================


class FeatureKind(Enum):
    """Kinds of annotated features."""

    GENE = "gene"
    CDS = "CDS"
    MAT_PEPTIDE = "mat_peptide"
    OTHER = "other"

    @classmethod
    def from_type(cls, type_name: str) -> "FeatureKind":
        """Map an annotation type name (e.g. ``CDS``) to a kind."""
        for kind in cls:
            if kind.value == type_name:
                return kind
        return cls.OTHER


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Feature:
    """A feature of a reference model.

    Attributes:
        index: Position of the feature in its model's feature list (0-based).
        kind: Feature kind.
        coords: Model-space coordinates, 5' to 3'.
        parent: Index of the parent feature, if any.
        is_expendable: Alerts on this feature may demote it to a
            miscellaneous feature instead of failing the sequence.
        is_deletable: The feature may be completely deleted without
            failing the sequence.
        product: Product name, if annotated.
        gene: Gene name, if annotated.
        type_name: Original annotation type (e.g. ``stem_loop`` for OTHER).
    """

    index: int
    kind: FeatureKind
    coords: SegmentList
    parent: int | None = None
    is_expendable: bool = False
    is_deletable: bool = False
    product: str | None = None
    gene: str | None = None
    type_name: str | None = None

    @property
    def is_cds(self) -> bool:
        return self.kind is FeatureKind.CDS

    @property
    def is_mat_peptide(self) -> bool:
        return self.kind is FeatureKind.MAT_PEPTIDE

    @property
    def strand(self) -> Strand:
        return self.coords.strand

    @property
    def span(self) -> Interval:
        return self.coords.span()

    @property
    def length(self) -> int:
        return self.coords.length

    @property
    def number(self) -> int:
        """1-based feature number used in reports."""
        return self.index + 1

    @property
    def display_type(self) -> str:
        return self.type_name or self.kind.value

    @property
    def name(self) -> str:
        """Human-readable name: product, then gene, then type and number."""
        return self.product or self.gene or f"{self.display_type}.{self.number}"


@attrs.define(frozen=True)
class FeatureMap:
    """Validated, immutable feature list for one reference model.

    Validation runs at construction. Any violation raises
    :class:`FeatureMapError`, which aborts loading of the model.

    Attributes:
        model_id: Model name.
        model_length: Model length in positions.
        features: Features ordered by index.
        transl_table: NCBI translation table for CDS features.
        group: Model group (e.g. a species), if any.
        subgroup: Model subgroup (e.g. a genotype), if any.
    """

    model_id: str
    model_length: int
    features: tuple[Feature, ...] = attrs.field(converter=tuple)
    transl_table: int = 1
    group: str | None = None
    subgroup: str | None = None
    _children: dict[int, tuple[int, ...]] = attrs.field(
        init=False, repr=False, eq=False
    )

    def __attrs_post_init__(self) -> None:
        self._validate()
        children: dict[int, list[int]] = {}
        for feature in self.features:
            if feature.parent is not None:
                children.setdefault(feature.parent, []).append(feature.index)
        object.__setattr__(
            self, "_children", {k: tuple(v) for k, v in children.items()}
        )

    def _validate(self) -> None:
        if self.model_length < 1:
            raise FeatureMapError(
                f"Model {self.model_id}: length must be positive, got {self.model_length}"
            )
        if self.transl_table not in SUPPORTED_TABLES:
            raise FeatureMapError(
                f"Model {self.model_id}: unsupported translation table {self.transl_table}"
            )

        for position, feature in enumerate(self.features):
            where = f"Model {self.model_id}, feature {position}"
            if feature.index != position:
                raise FeatureMapError(
                    f"{where}: index {feature.index} does not match its position"
                )
            if feature.coords.is_blank:
                raise FeatureMapError(f"{where}: coordinates are blank")
            for seg in feature.coords:
                if seg.strand is Strand.UNKNOWN:
                    raise FeatureMapError(f"{where}: segment {seg} has unknown strand")
                if seg.low < 1 or seg.high > self.model_length:
                    raise FeatureMapError(
                        f"{where}: segment {seg} outside model 1..{self.model_length}"
                    )
                if (seg.strand is Strand.PLUS) != (seg.start <= seg.end) and seg.length > 1:
                    raise FeatureMapError(
                        f"{where}: segment {seg} is not oriented 5' to 3'"
                    )

            if feature.parent is None:
                if feature.is_mat_peptide:
                    logger.debug(f"{where}: mat_peptide without a parent CDS")
                continue
            if not 0 <= feature.parent < position:
                raise FeatureMapError(
                    f"{where}: parent index {feature.parent} must reference an earlier feature"
                )
            parent = self.features[feature.parent]
            if feature.is_mat_peptide:
                if not parent.is_cds:
                    raise FeatureMapError(
                        f"{where}: mat_peptide parent {parent.index} is {parent.kind.value}, not CDS"
                    )
                if not parent.span.contains_interval(feature.span):
                    raise FeatureMapError(
                        f"{where}: mat_peptide {feature.coords} not contained in "
                        f"parent CDS span {parent.span}"
                    )

    # -------------------------------------------------------------------------
    # Sequence protocol
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __getitem__(self, index: int) -> Feature:
        return self.features[index]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def children_of(self, index: int) -> list[Feature]:
        """Features whose parent is ``index``, in index order."""
        return [self.features[i] for i in self._children.get(index, ())]

    def parent_of(self, index: int) -> Feature | None:
        parent = self.features[index].parent
        return None if parent is None else self.features[parent]

    def is_identical_coords(self, a: int, b: int) -> bool:
        """Check if two features have identical model coordinates."""
        return self.features[a].coords == self.features[b].coords

    def cds_features(self) -> list[Feature]:
        return [f for f in self.features if f.is_cds]

    def has_identical_cds(self, index: int) -> bool:
        """Check if another CDS shares this feature's model coordinates."""
        return any(
            cds.index != index and self.is_identical_coords(cds.index, index)
            for cds in self.cds_features()
        )

    def adjacent_peptide_pairs(self) -> list[tuple[Feature, Feature]]:
        """Consecutive mat_peptides of the same CDS that abut in model space."""
        pairs = []
        for cds in self.cds_features():
            peptides = [f for f in self.children_of(cds.index) if f.is_mat_peptide]
            for prev, nxt in zip(peptides, peptides[1:]):
                step = 1 if prev.strand is Strand.PLUS else -1
                if prev.coords.last.end + step == nxt.coords.first.start:
                    pairs.append((prev, nxt))
        return pairs

    def label(self, index: int) -> str:
        """Short label such as ``CDS.1`` (number counted within the kind)."""
        feature = self.features[index]
        n = sum(
            1 for f in self.features[: index + 1] if f.display_type == feature.display_type
        )
        return f"{feature.display_type}.{n}"


# =============================================================================
# Model Library
# =============================================================================


class ModelLibrary(Mapping):
    """Read-only collection of feature maps keyed by model id.

    Shared by every sequence classified to one of its models.

    Example:
        >>> library = ModelLibrary([fmap])
        >>> library.features_for_model("toy")[0].kind
        <FeatureKind.CDS: 'CDS'>
    """

    def __init__(self, feature_maps: Iterable[FeatureMap] = ()) -> None:
        self._maps: dict[str, FeatureMap] = {}
        for fmap in feature_maps:
            if fmap.model_id in self._maps:
                raise FeatureMapError(f"Duplicate model id: {fmap.model_id}")
            self._maps[fmap.model_id] = fmap

    def __getitem__(self, model_id: str) -> FeatureMap:
        return self._maps[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._maps)

    def __len__(self) -> int:
        return len(self._maps)

    def features_for_model(self, model_id: str) -> list[Feature]:
        """Ordered features of a model.

        Raises:
            KeyError: If the model is unknown.
        """
        return list(self._maps[model_id].features)
