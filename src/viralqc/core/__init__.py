"""Core data model and alignment analysis for viralqc.

This module provides:

- Feature maps of reference models
- Per-sequence evidence (hits, protein predictions, classification)
- Sequence-to-model coordinate mapping over an alignment
- Reading-frame and codon analysis of CDS features

Example:
    >>> from viralqc.core import AlignmentView, FeatureMap
    >>> view = AlignmentView(unit.alignment, unit.sequence, fmap.model_length)
    >>> mapping = view.map_feature(fmap[0])
"""

from viralqc.core.alignment import (
    AlignmentColumn,
    AlignmentError,
    AlignmentView,
    DeleteRun,
    End,
    FeatureMapping,
    InsertRun,
    ModelMapping,
    SegmentMapping,
)
from viralqc.core.evidence import (
    ClassificationScores,
    Hit,
    ModelScore,
    ProteinIndel,
    ProteinPrediction,
    SequenceUnit,
)
from viralqc.core.features import (
    Feature,
    FeatureKind,
    FeatureMap,
    FeatureMapError,
    ModelLibrary,
)
from viralqc.core.frames import (
    CodonReport,
    FrameConfig,
    FrameshiftCandidate,
    FrameshiftConfidence,
    analyze_codons,
    find_frameshifts,
    frame_runs,
)

__all__ = [
    # Alignment
    "AlignmentColumn",
    "AlignmentError",
    "AlignmentView",
    "DeleteRun",
    "End",
    "FeatureMapping",
    "InsertRun",
    "ModelMapping",
    "SegmentMapping",
    # Evidence
    "ClassificationScores",
    "Hit",
    "ModelScore",
    "ProteinIndel",
    "ProteinPrediction",
    "SequenceUnit",
    # Features
    "Feature",
    "FeatureKind",
    "FeatureMap",
    "FeatureMapError",
    "ModelLibrary",
    # Frames
    "CodonReport",
    "FrameConfig",
    "FrameshiftCandidate",
    "FrameshiftConfidence",
    "analyze_codons",
    "find_frameshifts",
    "frame_runs",
]
