"""JSON loaders for models and sequence units.

Upstream stages (model building, classification, coverage search,
alignment, protein search) are expected to write their parsed results
as JSON. A bundle file holds the models, the units, or both:

.. code-block:: json

    {
      "models": [
        {"model_id": "toy", "length": 50, "transl_table": 1,
         "features": [
           {"type": "CDS", "coords": "11..31:+", "product": "polyprotein"},
           {"type": "mat_peptide", "coords": "11..22:+", "parent": 0}
         ]}
      ],
      "units": [
        {"sequence_id": "seq1", "model_id": "toy", "sequence": "ACGT...",
         "alignment": [[1, 1, "A", 0.99], [null, 2, "C", 0.9]],
         "hits": [{"seq": "1..50:+", "mdl": "1..50:+", "score": 80.0}]}
      ]
    }

Coordinates use the ``<start>..<end>:<strand>`` text form. Feature
``parent`` values are 0-based feature indices. An alignment column is
``[model_pos, seq_pos, residue, confidence]`` with ``null`` for an
insertion column, a gap in the sequence, or a missing confidence.

Example:
    >>> from viralqc.io.bundle import load_bundle
    >>> library, units = load_bundle("run.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from viralqc.core.alignment import AlignmentColumn
from viralqc.core.evidence import (
    ClassificationScores,
    Hit,
    ModelScore,
    ProteinIndel,
    ProteinPrediction,
    SequenceUnit,
)
from viralqc.core.features import Feature, FeatureKind, FeatureMap, FeatureMapError, ModelLibrary
from viralqc.utils.intervals import Interval, SegmentList, Strand

logger = logging.getLogger(__name__)


class BundleError(ValueError):
    """Raised when a bundle file is malformed."""

    pass


# =============================================================================
# Models
# =============================================================================


def feature_from_dict(index: int, data: dict[str, Any]) -> Feature:
    """Build a feature from its JSON record."""
    try:
        type_name = data["type"]
        kind = FeatureKind.from_type(type_name)
        return Feature(
            index=index,
            kind=kind,
            coords=SegmentList.parse(data["coords"]),
            parent=data.get("parent"),
            is_expendable=bool(data.get("expendable", False)),
            is_deletable=bool(data.get("deletable", False)),
            product=data.get("product"),
            gene=data.get("gene"),
            type_name=None if kind is not FeatureKind.OTHER else type_name,
        )
    except KeyError as e:
        raise FeatureMapError(f"Feature {index}: missing field {e}") from None
    except ValueError as e:
        raise FeatureMapError(f"Feature {index}: {e}") from None


def feature_map_from_dict(data: dict[str, Any]) -> FeatureMap:
    """Build and validate a feature map from its JSON record.

    Raises:
        FeatureMapError: If the record is incomplete or fails validation.
    """
    try:
        model_id = data["model_id"]
        length = int(data["length"])
    except KeyError as e:
        raise FeatureMapError(f"Model record missing field {e}") from None
    features = [
        feature_from_dict(i, record) for i, record in enumerate(data.get("features", []))
    ]
    return FeatureMap(
        model_id=model_id,
        model_length=length,
        features=features,
        transl_table=int(data.get("transl_table", 1)),
        group=data.get("group"),
        subgroup=data.get("subgroup"),
    )


def feature_map_to_dict(fmap: FeatureMap) -> dict[str, Any]:
    features = []
    for feature in fmap:
        record: dict[str, Any] = {
            "type": feature.display_type,
            "coords": str(feature.coords),
        }
        if feature.parent is not None:
            record["parent"] = feature.parent
        if feature.is_expendable:
            record["expendable"] = True
        if feature.is_deletable:
            record["deletable"] = True
        if feature.product:
            record["product"] = feature.product
        if feature.gene:
            record["gene"] = feature.gene
        features.append(record)
    return {
        "model_id": fmap.model_id,
        "length": fmap.model_length,
        "transl_table": fmap.transl_table,
        "group": fmap.group,
        "subgroup": fmap.subgroup,
        "features": features,
    }


# =============================================================================
# Sequence units
# =============================================================================


def _interval(value: Any, what: str) -> Interval:
    if not isinstance(value, str):
        raise BundleError(f"{what}: expected an interval string, got {value!r}")
    return Interval.parse(value)


def _model_score(data: dict[str, Any] | None) -> ModelScore | None:
    if data is None:
        return None
    return ModelScore(
        model_id=data["model_id"],
        score=float(data["score"]),
        bias=float(data.get("bias", 0.0)),
        group=data.get("group"),
        subgroup=data.get("subgroup"),
    )


def _indel(data: dict[str, Any] | None) -> ProteinIndel | None:
    if data is None:
        return None
    return ProteinIndel(
        seq_pos=int(data["seq_pos"]), mdl_pos=int(data["mdl_pos"]), length=int(data["length"])
    )


def unit_from_dict(data: dict[str, Any]) -> SequenceUnit:
    """Build a sequence unit from its JSON record.

    Raises:
        BundleError: If the record is malformed.
    """
    sequence_id = data.get("sequence_id", "?")
    try:
        alignment = None
        if data.get("alignment") is not None:
            alignment = [
                AlignmentColumn(
                    model_pos=col[0],
                    seq_pos=col[1],
                    residue=col[2] if len(col) > 2 else "",
                    confidence=col[3] if len(col) > 3 else None,
                )
                for col in data["alignment"]
            ]

        hits = [
            Hit(
                seq=_interval(h["seq"], "hit seq"),
                mdl=_interval(h["mdl"], "hit mdl"),
                bit_score=float(h["score"]),
                bias_score=float(h.get("bias", 0.0)),
            )
            for h in data.get("hits", [])
        ]

        predictions = None
        if data.get("protein_predictions") is not None:
            predictions = [
                ProteinPrediction(
                    feature_index=int(p["feature"]),
                    seq=_interval(p["seq"], "protein seq"),
                    score=float(p["score"]),
                    max_insert=_indel(p.get("max_insert")),
                    max_delete=_indel(p.get("max_delete")),
                    stop_pos=p.get("stop_pos"),
                )
                for p in data["protein_predictions"]
            ]

        classification = None
        if data.get("classification") is not None:
            cls = data["classification"]
            classification = ClassificationScores(
                best=_model_score(cls["best"]),
                second=_model_score(cls.get("second")),
                best_in_group=_model_score(cls.get("best_in_group")),
                best_in_subgroup=_model_score(cls.get("best_in_subgroup")),
            )

        return SequenceUnit(
            sequence_id=data["sequence_id"],
            model_id=data["model_id"],
            sequence=data["sequence"],
            alignment=alignment,
            alignment_strand=Strand.parse(data.get("alignment_strand", "+")),
            hits=hits,
            protein_predictions=predictions,
            classification=classification,
        )
    except KeyError as e:
        raise BundleError(f"Unit {sequence_id}: missing field {e}") from None
    except (TypeError, ValueError, IndexError) as e:
        raise BundleError(f"Unit {sequence_id}: {e}") from None


# =============================================================================
# Files
# =============================================================================


def _read_json(path: Path | str) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Bundle file not found: {path}")
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise BundleError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise BundleError(f"{path}: top level must be an object")
    return data


def load_library(path: Path | str) -> ModelLibrary:
    """Load every model of a bundle file.

    Raises:
        FeatureMapError: If a model fails validation.
    """
    data = _read_json(path)
    library = ModelLibrary(feature_map_from_dict(m) for m in data.get("models", []))
    logger.info(f"Loaded {len(library)} models from {path}")
    return library


def load_units(path: Path | str) -> list[SequenceUnit]:
    """Load every sequence unit of a bundle file."""
    data = _read_json(path)
    units = [unit_from_dict(u) for u in data.get("units", [])]
    logger.info(f"Loaded {len(units)} sequence units from {path}")
    return units


def load_bundle(path: Path | str) -> tuple[ModelLibrary, list[SequenceUnit]]:
    """Load models and units from one bundle file.

    Raises:
        BundleError: If a unit references a model not in the bundle.
    """
    data = _read_json(path)
    library = ModelLibrary(feature_map_from_dict(m) for m in data.get("models", []))
    units = [unit_from_dict(u) for u in data.get("units", [])]
    for unit in units:
        if unit.model_id not in library:
            raise BundleError(f"Unit {unit.sequence_id}: unknown model {unit.model_id}")
    logger.info(f"Loaded {len(library)} models and {len(units)} units from {path}")
    return library, units
