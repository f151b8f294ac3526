"""Start codon, stop codon, length and frameshift detectors.

All checks run the codon/frame analyzer on the nucleotide-based
prediction of each annotated CDS. Length checks also cover complete
mat_peptides.
"""

from __future__ import annotations

import logging

from viralqc.core.alignment import FeatureMapping
from viralqc.core.features import Feature
from viralqc.core.frames import (
    CodonReport,
    FrameshiftConfidence,
    StopCodonHit,
    analyze_codons,
    find_frameshifts,
)
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, SegmentList

logger = logging.getLogger(__name__)

# (confidence, terminal) -> code
FRAMESHIFT_CODES = {
    (FrameshiftConfidence.HIGH, True): AlertCode.FSTHICFT,
    (FrameshiftConfidence.HIGH, False): AlertCode.FSTHICFI,
    (FrameshiftConfidence.LOW, True): AlertCode.FSTLOCFT,
    (FrameshiftConfidence.LOW, False): AlertCode.FSTLOCFI,
    (FrameshiftConfidence.UNKNOWN, True): AlertCode.FSTUKCFT,
    (FrameshiftConfidence.UNKNOWN, False): AlertCode.FSTUKCFI,
}


def _shift_detail(hit: StopCodonHit) -> str:
    mdl = "?" if hit.mdl_shift is None else str(hit.mdl_shift)
    return f"{hit.codon} shifted S:{hit.seq_shift},M:{mdl}"


class CodonDetector(Detector):
    """Detect start, stop, length and frame problems in coding features."""

    family = DetectorFamily.CODONS

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        view = ctx.view
        if view is None:
            return []
        alerts = []
        for feature, mapping in ctx.annotated():
            if feature.is_cds:
                report = analyze_codons(
                    view, mapping, ctx.feature_map.transl_table, ctx.config.atg_only
                )
                alerts.extend(self._codon_alerts(ctx, feature, mapping, report))
                alerts.extend(self._frameshift_alerts(ctx, feature, mapping))
            elif feature.is_mat_peptide:
                alerts.extend(self._peptide_length(ctx, feature, mapping))
        return alerts

    def _codon_alerts(
        self,
        ctx: DetectionContext,
        feature: Feature,
        mapping: FeatureMapping,
        report: CodonReport,
    ) -> list[Alert]:
        view = ctx.view
        seq_strand = view.seq_strand(feature.strand)
        alerts = []

        if report.start_valid is False:
            positions = report.positions[:3]
            alerts.append(
                ctx.alert(
                    AlertCode.MUTSTART,
                    feature=feature,
                    seq_coords=Interval(positions[0], positions[-1], seq_strand),
                    mdl_coords=self._model_interval(ctx, feature, positions),
                    detail=f"{report.start_codon} start codon",
                )
            )

        if report.length_ok is False:
            alerts.append(
                ctx.alert(
                    AlertCode.UNEXLENG,
                    feature=feature,
                    seq_coords=mapping.seq_coords,
                    mdl_coords=mapping.mdl_coords,
                    detail=f"{len(report.nucleotides)} nt, not a multiple of 3",
                )
            )

        if report.early_stop is not None:
            stop = report.early_stop
            alerts.append(
                ctx.alert(
                    AlertCode.CDSSTOPN,
                    feature=feature,
                    seq_coords=stop.seq,
                    mdl_coords=stop.mdl,
                    detail=_shift_detail(stop),
                )
            )

        if report.stop_valid is False:
            positions = report.positions[-3:]
            alerts.append(
                ctx.alert(
                    AlertCode.MUTENDCD,
                    feature=feature,
                    seq_coords=Interval(positions[0], positions[-1], seq_strand),
                    mdl_coords=self._model_interval(ctx, feature, positions),
                    detail=f"{report.stop_codon} stop codon",
                )
            )
            if report.downstream_searched:
                if report.downstream_stop is not None:
                    stop = report.downstream_stop
                    alerts.append(
                        ctx.alert(
                            AlertCode.MUTENDEX,
                            feature=feature,
                            seq_coords=stop.seq,
                            mdl_coords=stop.mdl,
                            detail=_shift_detail(stop),
                        )
                    )
                else:
                    alerts.append(
                        ctx.alert(
                            AlertCode.MUTENDNS,
                            feature=feature,
                            detail="no in-frame stop codon 3' of predicted start",
                        )
                    )
        return alerts

    def _frameshift_alerts(
        self, ctx: DetectionContext, feature: Feature, mapping: FeatureMapping
    ) -> list[Alert]:
        alerts = []
        for candidate in find_frameshifts(ctx.view, mapping, ctx.config.frames):
            code = FRAMESHIFT_CODES[(candidate.confidence, candidate.terminal)]
            logger.debug(
                f"{ctx.sequence_id}: {code.value} in {ctx.feature_map.label(feature.index)} "
                f"({candidate.length} nt shifted)"
            )
            alerts.append(
                ctx.alert(
                    code,
                    feature=feature,
                    seq_coords=candidate.seq,
                    mdl_coords=candidate.mdl,
                    detail=candidate.detail,
                )
            )
        return alerts

    def _peptide_length(
        self, ctx: DetectionContext, feature: Feature, mapping: FeatureMapping
    ) -> list[Alert]:
        if mapping.trunc5 or mapping.trunc3:
            return []
        length = mapping.seq_length
        if length % 3 == 0:
            return []
        return [
            ctx.alert(
                AlertCode.UNEXLENG,
                feature=feature,
                seq_coords=mapping.seq_coords,
                mdl_coords=mapping.mdl_coords,
                detail=f"{length} nt, not a multiple of 3",
            )
        ]

    @staticmethod
    def _model_interval(
        ctx: DetectionContext, feature: Feature, positions: tuple[int, ...]
    ) -> SegmentList | None:
        mapped = [ctx.view.model_pos_for_seq_pos(p) for p in positions]
        if not mapped or any(m is None or m.is_insert for m in mapped):
            return None
        return SegmentList.of(Interval(mapped[0].model_pos, mapped[-1].model_pos, feature.strand))
