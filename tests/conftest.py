"""Pytest configuration and shared fixtures for viralqc tests.

This module contains fixtures that are shared across multiple test modules.
Fixtures are organized by category:

- Model fixtures: A small toy reference model with one CDS and two
  mature peptides
- Unit fixtures: Build sequence units by editing the model sequence
  (substitutions, deletions, insertions) and aligning it back
- Bundle fixtures: JSON bundles on disk for loader and CLI tests

The toy model is 60 positions long. Its CDS spans 11..40 and reads
ATG GCT GCA GCC GCG AAA CCC GGG TTT TAA, so an unedited sequence
raises no alerts at all. MINUS_TOY_SEQUENCE carries the same CDS on the
minus strand for use with ``minus_cds_map``.
"""

import json
from pathlib import Path

import pytest

from viralqc.core.alignment import AlignmentColumn
from viralqc.core.evidence import Hit, SequenceUnit
from viralqc.core.features import Feature, FeatureKind, FeatureMap, ModelLibrary
from viralqc.detectors.base import DetectionContext, DetectorConfig
from viralqc.utils.intervals import Interval, SegmentList, Strand
from viralqc.utils.sequences import reverse_complement

# 10 nt 5' UTR, 30 nt CDS, 20 nt 3' UTR
TOY_CDS = "ATGGCTGCAGCCGCGAAACCCGGGTTTTAA"
TOY_SEQUENCE = "ACGTACGTAC" + TOY_CDS + "ACGTACGTACGTACGTACGT"
TOY_LENGTH = len(TOY_SEQUENCE)

# Same model with the CDS on the minus strand, read 40..11
MINUS_TOY_SEQUENCE = TOY_SEQUENCE[:10] + reverse_complement(TOY_CDS) + TOY_SEQUENCE[40:]


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def build_map():
    """Factory for toy feature maps.

    Args (of the returned function):
        with_peptides: Add mat_peptides 11..25 and 26..37 under the CDS.
        expendable: Mark the CDS expendable.
        extra: Extra features as (type, coords) or (type, coords, deletable).
    """

    def _build(with_peptides=True, expendable=False, extra=()):
        features = [
            Feature(
                0,
                FeatureKind.CDS,
                SegmentList.parse("11..40:+"),
                is_expendable=expendable,
                product="polyprotein",
            )
        ]
        if with_peptides:
            features.append(
                Feature(
                    1,
                    FeatureKind.MAT_PEPTIDE,
                    SegmentList.parse("11..25:+"),
                    parent=0,
                    product="leader",
                )
            )
            features.append(
                Feature(
                    2,
                    FeatureKind.MAT_PEPTIDE,
                    SegmentList.parse("26..37:+"),
                    parent=0,
                    product="capsid",
                )
            )
        for spec in extra:
            type_name, coords = spec[0], spec[1]
            deletable = spec[2] if len(spec) > 2 else False
            kind = FeatureKind.from_type(type_name)
            features.append(
                Feature(
                    len(features),
                    kind,
                    SegmentList.parse(coords),
                    is_deletable=deletable,
                    type_name=type_name if kind is FeatureKind.OTHER else None,
                )
            )
        return FeatureMap(model_id="toy", model_length=TOY_LENGTH, features=features)

    return _build


@pytest.fixture
def toy_map(build_map) -> FeatureMap:
    """Toy model with a CDS and two adjacent mat_peptides."""
    return build_map()


@pytest.fixture
def cds_only_map(build_map) -> FeatureMap:
    """Toy model with a single CDS."""
    return build_map(with_peptides=False)


@pytest.fixture
def minus_cds_map() -> FeatureMap:
    """Toy model with a single CDS on the minus strand (use with MINUS_TOY_SEQUENCE)."""
    cds = Feature(0, FeatureKind.CDS, SegmentList.parse("40..11:-"), product="polyprotein")
    return FeatureMap(model_id="toy", model_length=TOY_LENGTH, features=[cds])


@pytest.fixture
def toy_library(toy_map) -> ModelLibrary:
    return ModelLibrary([toy_map])


# =============================================================================
# Unit Fixtures
# =============================================================================


def _edited_alignment(template, substitutions, deleted, inserts, conf, conf_at):
    """Apply edits to a model sequence and align the result back to the model."""
    sequence = []
    columns = []

    def emit(model_pos, nt, confidence):
        sequence.append(nt)
        columns.append(AlignmentColumn(model_pos, len(sequence), nt, confidence))

    for nt in inserts.get(0, ""):
        emit(None, nt, conf)
    for m in range(1, TOY_LENGTH + 1):
        if m in deleted:
            columns.append(AlignmentColumn(m, None, "-", None))
        else:
            emit(m, substitutions.get(m, template[m - 1]), conf_at.get(m, conf))
        for nt in inserts.get(m, ""):
            emit(None, nt, conf)
    return "".join(sequence), columns


@pytest.fixture
def make_unit():
    """Factory for sequence units derived from the toy sequence.

    Args (of the returned function):
        substitutions: Model position -> replacement nucleotide.
        deleted: Model positions missing from the sequence.
        inserts: Model position -> nucleotides inserted after it
            (0 inserts before the first position).
        conf: Confidence of every aligned residue (None for no track).
        conf_at: Model position -> confidence override.
        hits: Coverage hits; defaults to one hit over the whole sequence.
        protein_predictions: Protein predictions (None = stage not run).
        classification: Classification scores.
        sequence_id: Sequence name.
        aligned: Build an alignment (False gives a unit without one).
        template: Model sequence to edit (defaults to TOY_SEQUENCE).
    """

    def _make(
        substitutions=None,
        deleted=(),
        inserts=None,
        conf=0.99,
        conf_at=None,
        hits=None,
        protein_predictions=None,
        classification=None,
        sequence_id="seq1",
        aligned=True,
        template=TOY_SEQUENCE,
    ) -> SequenceUnit:
        sequence, columns = _edited_alignment(
            template, substitutions or {}, set(deleted), inserts or {}, conf, conf_at or {}
        )
        if hits is None:
            hits = [
                Hit(
                    seq=Interval(1, len(sequence), Strand.PLUS),
                    mdl=Interval(1, TOY_LENGTH, Strand.PLUS),
                    bit_score=100.0,
                )
            ]
        return SequenceUnit(
            sequence_id=sequence_id,
            model_id="toy",
            sequence=sequence,
            alignment=columns if aligned else None,
            hits=hits,
            protein_predictions=protein_predictions,
            classification=classification,
        )

    return _make


@pytest.fixture
def make_context():
    """Factory for detection contexts."""

    def _make(unit, feature_map, config=None) -> DetectionContext:
        return DetectionContext.from_unit(unit, feature_map, config or DetectorConfig())

    return _make


# =============================================================================
# Bundle Fixtures
# =============================================================================


def _identity_alignment(sequence):
    return [[i, i, nt, 0.99] for i, nt in enumerate(sequence, start=1)]


@pytest.fixture
def bundle_data() -> dict:
    """Bundle with the toy model, one clean unit and one with an early stop."""
    early_stop = TOY_SEQUENCE[:22] + "TAA" + TOY_SEQUENCE[25:39] + "C" + TOY_SEQUENCE[40:]
    hit = {"seq": f"1..{TOY_LENGTH}:+", "mdl": f"1..{TOY_LENGTH}:+", "score": 100.0}
    return {
        "models": [
            {
                "model_id": "toy",
                "length": TOY_LENGTH,
                "transl_table": 1,
                "group": "toyvirus",
                "features": [
                    {"type": "CDS", "coords": "11..40:+", "product": "polyprotein"},
                    {"type": "mat_peptide", "coords": "11..25:+", "parent": 0, "product": "leader"},
                    {"type": "mat_peptide", "coords": "26..37:+", "parent": 0, "product": "capsid"},
                ],
            }
        ],
        "units": [
            {
                "sequence_id": "clean",
                "model_id": "toy",
                "sequence": TOY_SEQUENCE,
                "alignment": _identity_alignment(TOY_SEQUENCE),
                "hits": [hit],
            },
            {
                "sequence_id": "stop",
                "model_id": "toy",
                "sequence": early_stop,
                "alignment": _identity_alignment(early_stop),
                "hits": [hit],
            },
        ],
    }


@pytest.fixture
def bundle_file(tmp_path: Path, bundle_data: dict) -> Path:
    """Bundle written to disk."""
    path = tmp_path / "run.json"
    with open(path, "w") as f:
        json.dump(bundle_data, f)
    return path


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
