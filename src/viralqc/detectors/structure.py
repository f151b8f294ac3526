"""Structural detectors: annotation presence, deleted features, peptide adjacency."""

from __future__ import annotations

import logging

from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, SegmentList, Strand

logger = logging.getLogger(__name__)


class StructureDetector(Detector):
    """Detect missing annotation, deleted features and non-adjacent peptides."""

    family = DetectorFamily.STRUCTURE

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        view = ctx.view
        if view is None or view.is_empty:
            if ctx.hits:
                alerts.append(
                    ctx.alert(AlertCode.UNEXDIVG, detail="hits found but no usable alignment")
                )
            if view is None:
                return alerts

        if not ctx.annotated():
            alerts.append(ctx.alert(AlertCode.NOFTRANN, detail="no feature overlaps the alignment"))
            return alerts

        alerts.extend(self._deletions(ctx))
        alerts.extend(self._peptide_adjacency(ctx))
        return alerts

    def _deletions(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        for feature in ctx.feature_map:
            mapping = ctx.mapping(feature.index)
            if mapping.is_fully_deleted:
                if feature.is_deletable:
                    logger.debug(
                        f"{ctx.sequence_id}: deletable feature {ctx.feature_map.label(feature.index)} deleted"
                    )
                    continue
                alerts.append(
                    ctx.alert(
                        AlertCode.DELETINS,
                        mdl_coords=feature.coords,
                        detail=f"{ctx.feature_map.label(feature.index)} ({feature.name}) deleted",
                    )
                )
            elif mapping.deleted and mapping.is_annotated:
                deleted = SegmentList(feature.coords[i] for i in mapping.deleted)
                alerts.append(
                    ctx.alert(
                        AlertCode.DELETINF,
                        feature=feature,
                        mdl_coords=deleted,
                        detail=f"{len(mapping.deleted)} of {len(feature.coords)} segments deleted",
                    )
                )
        return alerts

    def _peptide_adjacency(self, ctx: DetectionContext) -> list[Alert]:
        alerts = []
        for prev, nxt in ctx.feature_map.adjacent_peptide_pairs():
            prev_map = ctx.mapping(prev.index)
            next_map = ctx.mapping(nxt.index)
            if not prev_map.is_annotated or not next_map.is_annotated:
                continue
            if prev_map.trunc3 or next_map.trunc5:
                continue
            prev_end = prev_map.last.seq.end
            next_start = next_map.first.seq.start
            strand = prev_map.last.seq.strand
            step = -1 if strand is Strand.MINUS else 1
            if next_start == prev_end + step:
                continue
            alerts.append(
                ctx.alert(
                    AlertCode.PEPADJCY,
                    feature=prev,
                    seq_coords=SegmentList(
                        [Interval(prev_end, prev_end, strand), Interval(next_start, next_start, strand)]
                    ),
                    mdl_coords=SegmentList(
                        [
                            Interval(prev_map.last.mdl.end, prev_map.last.mdl.end, prev.strand),
                            Interval(next_map.first.mdl.start, next_map.first.mdl.start, nxt.strand),
                        ]
                    ),
                    detail=(
                        f"abutting {ctx.feature_map.label(prev.index)} and "
                        f"{ctx.feature_map.label(nxt.index)} predicted at {prev_end} and {next_start}"
                    ),
                )
            )
        return alerts
