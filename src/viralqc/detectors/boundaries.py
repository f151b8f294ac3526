"""Feature boundary detectors.

Two kinds of checks run here:

- Alignment-based: the 5' and 3' boundary of every annotated feature is
  checked for a gap in the sequence or low alignment confidence.
- Protein-based (CDS only, when the protein stage ran): the nucleotide
  prediction is compared with the protein-homology prediction for
  presence, strand and endpoint agreement.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from viralqc.core.alignment import FeatureMapping, SegmentMapping
from viralqc.core.evidence import ProteinPrediction
from viralqc.core.features import Feature
from viralqc.core.frames import analyze_codons
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, Strand

logger = logging.getLogger(__name__)

# nt of the stop codon not covered by a protein alignment
STOP_CODON_LENGTH = 3


class BoundaryDetector(Detector):
    """Detect uncertain feature boundaries."""

    family = DetectorFamily.BOUNDARIES

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        for feature, mapping in ctx.annotated():
            alerts.extend(self._alignment_boundaries(ctx, feature, mapping))
        if ctx.protein_predictions is not None:
            alerts.extend(self._protein_boundaries(ctx, ctx.protein_predictions))
        return alerts

    # -------------------------------------------------------------------------
    # Alignment-based
    # -------------------------------------------------------------------------

    def _alignment_boundaries(
        self, ctx: DetectionContext, feature: Feature, mapping: FeatureMapping
    ) -> list[Alert]:
        cds_like = feature.is_cds or ctx.feature_map.has_identical_cds(feature.index)
        threshold = ctx.config.indf_thr_mp if feature.is_mat_peptide else ctx.config.indf_thr
        alerts = []

        first = mapping.first
        if not first.trunc5:
            alert = self._check_end(
                ctx,
                feature,
                first,
                five_prime=True,
                cds_like=cds_like,
                threshold=threshold,
            )
            if alert is not None:
                alerts.append(alert)

        last = mapping.last
        if not last.trunc3:
            alert = self._check_end(
                ctx,
                feature,
                last,
                five_prime=False,
                cds_like=cds_like,
                threshold=threshold,
            )
            if alert is not None:
                alerts.append(alert)
        return alerts

    @staticmethod
    def _check_end(
        ctx: DetectionContext,
        feature: Feature,
        segment: SegmentMapping,
        five_prime: bool,
        cds_like: bool,
        threshold: float,
    ) -> Alert | None:
        if five_prime:
            gap, conf = segment.gap5, segment.conf5
            seq_pos, mdl_pos = segment.seq.start, segment.model.start
            codes = (AlertCode.INDF5GAP, AlertCode.INDF5LCC, AlertCode.INDF5LCN)
        else:
            gap, conf = segment.gap3, segment.conf3
            seq_pos, mdl_pos = segment.seq.end, segment.model.end
            codes = (AlertCode.INDF3GAP, AlertCode.INDF3LCC, AlertCode.INDF3LCN)

        seq_coords = Interval(seq_pos, seq_pos, segment.seq.strand)
        mdl_coords = Interval(mdl_pos, mdl_pos, feature.strand)
        if gap:
            return ctx.alert(
                codes[0],
                feature=feature,
                seq_coords=seq_coords,
                mdl_coords=mdl_coords,
                detail=f"model position {mdl_pos} is a gap",
            )
        if conf is not None and conf < threshold:
            return ctx.alert(
                codes[1] if cds_like else codes[2],
                feature=feature,
                seq_coords=seq_coords,
                mdl_coords=mdl_coords,
                detail=f"{conf:.2f}<{threshold:.2f}",
            )
        return None

    # -------------------------------------------------------------------------
    # Protein-based
    # -------------------------------------------------------------------------

    def _protein_boundaries(
        self, ctx: DetectionContext, predictions: Sequence[ProteinPrediction]
    ) -> list[Alert]:
        best: dict[int, ProteinPrediction] = {}
        for pred in predictions:
            ctx.feature(pred.feature_index)
            current = best.get(pred.feature_index)
            if current is None or pred.score > current.score:
                best[pred.feature_index] = pred

        alerts = []
        for cds in ctx.feature_map.cds_features():
            mapping = ctx.mapping(cds.index)
            annotated = mapping is not None and mapping.is_annotated
            pred = best.get(cds.index)

            if pred is None:
                if annotated:
                    alerts.append(
                        ctx.alert(
                            AlertCode.INDFANTN,
                            feature=cds,
                            seq_coords=mapping.seq_coords,
                            mdl_coords=mapping.mdl_coords,
                            detail="no protein-based prediction",
                        )
                    )
                continue

            if not annotated:
                if pred.score >= ctx.config.xlonescore:
                    alerts.append(
                        ctx.alert(
                            AlertCode.INDFANTP,
                            feature=cds,
                            seq_coords=pred.seq,
                            detail=f"protein-only prediction, score:{pred.score:.1f}",
                        )
                    )
                continue

            alerts.extend(self._compare(ctx, cds, mapping, pred))
        return alerts

    def _compare(
        self,
        ctx: DetectionContext,
        cds: Feature,
        mapping: FeatureMapping,
        pred: ProteinPrediction,
    ) -> list[Alert]:
        view = ctx.view
        nt_strand = view.seq_strand(cds.strand)
        if pred.strand is not nt_strand:
            return [
                ctx.alert(
                    AlertCode.INDFSTRP,
                    feature=cds,
                    seq_coords=pred.seq,
                    detail=f"protein {pred.strand.value}, nucleotide {nt_strand.value}",
                )
            ]

        alerts = []
        tolerance = ctx.config.xalntol
        sign = 1 if nt_strand is Strand.PLUS else -1
        nt_span = mapping.seq_coords.span()

        if not mapping.trunc5:
            # positive: protein starts 5' of the nucleotide prediction
            diff5 = sign * (nt_span.start - pred.seq.start)
            if diff5 > tolerance:
                alerts.append(self._endpoint(ctx, cds, AlertCode.INDF5PLG, pred.seq.start, diff5, tolerance))
            elif -diff5 > tolerance:
                alerts.append(self._endpoint(ctx, cds, AlertCode.INDF5PST, pred.seq.start, -diff5, tolerance))

        if not mapping.trunc3:
            tolerance3 = tolerance
            report = analyze_codons(view, mapping, ctx.feature_map.transl_table, ctx.config.atg_only)
            if report.stop_valid:
                tolerance3 += STOP_CODON_LENGTH
            # positive: protein ends 3' of the nucleotide prediction
            diff3 = sign * (pred.seq.end - nt_span.end)
            if diff3 > tolerance3:
                alerts.append(self._endpoint(ctx, cds, AlertCode.INDF3PLG, pred.seq.end, diff3, tolerance3))
            elif -diff3 > tolerance3:
                alerts.append(self._endpoint(ctx, cds, AlertCode.INDF3PST, pred.seq.end, -diff3, tolerance3))

        if pred.stop_pos is not None:
            stop_end = pred.stop_pos + sign * (STOP_CODON_LENGTH - 1)
            alerts.append(
                ctx.alert(
                    AlertCode.CDSSTOPP,
                    feature=cds,
                    seq_coords=Interval(pred.stop_pos, stop_end, nt_strand),
                    detail=f"stop codon in protein-based alignment at {pred.stop_pos}",
                )
            )
        return alerts

    @staticmethod
    def _endpoint(
        ctx: DetectionContext,
        cds: Feature,
        code: AlertCode,
        position: int,
        distance: int,
        tolerance: int,
    ) -> Alert:
        strand = ctx.view.seq_strand(cds.strand)
        return ctx.alert(
            code,
            feature=cds,
            seq_coords=Interval(position, position, strand),
            detail=f"{distance}>{tolerance} nt",
        )
