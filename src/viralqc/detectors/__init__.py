"""Alert detectors for viralqc.

Each detector family reads the evidence for one sequence and returns
alerts, independent of every other family:

- Coverage: hit-list topology and similarity coverage
- Classification: score margins of the model assignment
- Structure: annotation presence, deleted features, peptide adjacency
- Codons: start, stop, length and frameshift checks
- Boundaries: boundary gaps, confidence and protein agreement
- Indels: long insertions and deletions
- Ambiguity: ambiguous nucleotides at sequence and feature ends

Example:
    >>> from viralqc.detectors import DetectionContext, DetectorConfig, DetectorSet
    >>> ctx = DetectionContext.from_unit(unit, feature_map, DetectorConfig())
    >>> alerts = DetectorSet().run(ctx)
"""

from viralqc.detectors.base import (
    DetectionContext,
    Detector,
    DetectorConfig,
    DetectorInvariantError,
)
from viralqc.detectors.ambiguity import AmbiguityDetector
from viralqc.detectors.boundaries import BoundaryDetector
from viralqc.detectors.classification import ClassificationDetector
from viralqc.detectors.codons import FRAMESHIFT_CODES, CodonDetector
from viralqc.detectors.coverage import CoverageDetector
from viralqc.detectors.dispatch import DetectorSet, default_detectors
from viralqc.detectors.indels import IndelDetector
from viralqc.detectors.structure import StructureDetector

__all__ = [
    # Base
    "Detector",
    "DetectorConfig",
    "DetectionContext",
    "DetectorInvariantError",
    # Families
    "CoverageDetector",
    "ClassificationDetector",
    "StructureDetector",
    "CodonDetector",
    "BoundaryDetector",
    "IndelDetector",
    "AmbiguityDetector",
    "FRAMESHIFT_CODES",
    # Dispatch
    "DetectorSet",
    "default_detectors",
]
