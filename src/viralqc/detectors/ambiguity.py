"""Ambiguous nucleotide detectors.

The sequence, CDS and generic-feature checks are independent and may
fire together on the same position. The generic-feature check skips
features whose coordinates are identical to a CDS, since the CDS check
already covers them.
"""

from __future__ import annotations

import logging

from viralqc.core.alignment import FeatureMapping
from viralqc.core.features import Feature
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, Strand
from viralqc.utils.sequences import is_ambiguous

logger = logging.getLogger(__name__)


class AmbiguityDetector(Detector):
    """Detect N and other ambiguous nucleotides at sequence and feature ends."""

    family = DetectorFamily.AMBIGUITY

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        seq = ctx.sequence
        if seq:
            if is_ambiguous(seq[0]):
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT5S, seq_coords=Interval(1, 1), detail=seq[0])
                )
            if is_ambiguous(seq[-1]):
                n = len(seq)
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT3S, seq_coords=Interval(n, n), detail=seq[-1])
                )

        for feature, mapping in ctx.annotated():
            if feature.is_cds:
                alerts.extend(self._cds(ctx, feature, mapping))
            elif not ctx.feature_map.has_identical_cds(feature.index):
                alerts.extend(self._generic(ctx, feature, mapping))
        return alerts

    @staticmethod
    def _end_positions(mapping: FeatureMapping) -> tuple[Interval, Interval]:
        first = mapping.first.seq
        last = mapping.last.seq
        return (
            Interval(first.start, first.start, first.strand),
            Interval(last.end, last.end, last.strand),
        )

    def _generic(
        self, ctx: DetectionContext, feature: Feature, mapping: FeatureMapping
    ) -> list[Alert]:
        alerts = []
        five, three = self._end_positions(mapping)
        if not mapping.trunc5:
            nt = ctx.view.fetch(five)
            if is_ambiguous(nt):
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT5F, feature=feature, seq_coords=five, detail=nt)
                )
        if not mapping.trunc3:
            nt = ctx.view.fetch(three)
            if is_ambiguous(nt):
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT3F, feature=feature, seq_coords=three, detail=nt)
                )
        return alerts

    def _cds(
        self, ctx: DetectionContext, feature: Feature, mapping: FeatureMapping
    ) -> list[Alert]:
        view = ctx.view
        alerts = []
        nts = view.fetch_segments(mapping.seq_coords)
        positions = [p for seg in mapping.seq_coords for p in seg.positions()]
        strand = mapping.first.seq.strand
        five, three = self._end_positions(mapping)

        if not mapping.trunc5 and nts:
            if is_ambiguous(nts[0]):
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT5C, feature=feature, seq_coords=five, detail=nts[0])
                )
            elif len(nts) >= 3 and any(is_ambiguous(nt) for nt in nts[1:3]):
                alerts.append(
                    ctx.alert(
                        AlertCode.AMBGCD5C,
                        feature=feature,
                        seq_coords=self._codon(positions[:3], strand),
                        detail=f"{nts[:3]} start codon",
                    )
                )
        if not mapping.trunc3 and nts:
            if is_ambiguous(nts[-1]):
                alerts.append(
                    ctx.alert(AlertCode.AMBGNT3C, feature=feature, seq_coords=three, detail=nts[-1])
                )
            elif len(nts) >= 3 and any(is_ambiguous(nt) for nt in nts[-3:-1]):
                alerts.append(
                    ctx.alert(
                        AlertCode.AMBGCD3C,
                        feature=feature,
                        seq_coords=self._codon(positions[-3:], strand),
                        detail=f"{nts[-3:]} stop codon",
                    )
                )
        return alerts

    @staticmethod
    def _codon(positions: list[int], strand: Strand) -> Interval:
        return Interval(positions[0], positions[-1], strand)
