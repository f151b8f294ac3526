"""Long insertion and deletion detectors for CDS features."""

from __future__ import annotations

import logging

from viralqc.core.alignment import InsertRun
from viralqc.core.features import Feature
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, Strand

logger = logging.getLogger(__name__)


def _is_internal(feature: Feature, after_model_pos: int) -> bool:
    """An insert after ``after_model_pos`` lies between two positions of one segment."""
    return any(seg.low <= after_model_pos < seg.high for seg in feature.coords)


class IndelDetector(Detector):
    """Detect insertions and deletions longer than the configured maximum.

    Nucleotide-alignment indels are checked per CDS segment; protein
    alignment indels are taken from the protein predictions.
    """

    family = DetectorFamily.INDELS

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        if ctx.view is not None:
            alerts.extend(self._nucleotide(ctx))
        if ctx.protein_predictions is not None:
            alerts.extend(self._protein(ctx))
        return alerts

    def _nucleotide(self, ctx: DetectionContext) -> list[Alert]:
        view = ctx.view
        cfg = ctx.config
        insertions = view.insertions()
        alerts = []
        for cds in ctx.feature_map.cds_features():
            mapping = ctx.mapping(cds.index)
            if not mapping.is_annotated:
                continue
            for run in insertions:
                if run.length <= cfg.nmaxins or not _is_internal(cds, run.after_model_pos):
                    continue
                alerts.append(
                    ctx.alert(
                        AlertCode.INSERTNN,
                        feature=cds,
                        seq_coords=self._oriented(run, cds),
                        mdl_coords=Interval(run.after_model_pos, run.after_model_pos, cds.strand),
                        detail=f"{run.length}>{cfg.nmaxins} nt inserted after model position {run.after_model_pos}",
                    )
                )
            for seg in cds.coords:
                for run in view.deletions(seg.low, seg.high):
                    if run.length <= cfg.nmaxdel:
                        continue
                    mdl = Interval.from_bounds(run.mdl.low, run.mdl.high, cds.strand)
                    seq = Interval.from_bounds(
                        min(run.seq_before, run.seq_after),
                        max(run.seq_before, run.seq_after),
                        view.seq_strand(cds.strand),
                    )
                    alerts.append(
                        ctx.alert(
                            AlertCode.DELETINN,
                            feature=cds,
                            seq_coords=seq,
                            mdl_coords=mdl,
                            detail=f"{run.length}>{cfg.nmaxdel} model positions deleted",
                        )
                    )
        return alerts

    @staticmethod
    def _oriented(run: InsertRun, feature: Feature) -> Interval:
        if feature.strand is Strand.MINUS:
            return Interval(run.seq.end, run.seq.start, run.seq.strand.opposite)
        return run.seq

    def _protein(self, ctx: DetectionContext) -> list[Alert]:
        cfg = ctx.config
        alerts = []
        for pred in ctx.protein_predictions:
            cds = ctx.feature(pred.feature_index)
            if pred.max_insert is not None and pred.max_insert.length > cfg.xmaxins:
                indel = pred.max_insert
                alerts.append(
                    ctx.alert(
                        AlertCode.INSERTNP,
                        feature=cds,
                        seq_coords=Interval(indel.seq_pos, indel.seq_pos, pred.strand),
                        detail=f"{indel.length}>{cfg.xmaxins} nt inserted at protein position {indel.mdl_pos}",
                    )
                )
            if pred.max_delete is not None and pred.max_delete.length > cfg.xmaxdel:
                indel = pred.max_delete
                alerts.append(
                    ctx.alert(
                        AlertCode.DELETINP,
                        feature=cds,
                        seq_coords=Interval(indel.seq_pos, indel.seq_pos, pred.strand),
                        detail=f"{indel.length}>{cfg.xmaxdel} nt deleted at protein position {indel.mdl_pos}",
                    )
                )
        return alerts
