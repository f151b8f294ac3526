"""Coverage and hit-topology detectors.

These detectors read the hit list of the coverage search, not the
alignment. Only hits on the strand of the top-scoring hit count toward
coverage, duplication, order and similarity gaps.

Alerts:
    noannotn: No hits at all.
    revcompl: Top hit on the minus strand.
    indfstrn: Strong hit on the strand opposite the top hit.
    dupregin: Two hits cover the same model region.
    discontn: Hit order differs between sequence and model.
    lowcovrg: Too little of the sequence is covered.
    lowsim*: Uncovered region at the 5' end, 3' end or interior,
        per overlapping feature when one is annotated there.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from viralqc.core.evidence import Hit
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import (
    Interval,
    SegmentList,
    Strand,
    merge_intervals,
    missing_intervals,
    overlap_len,
)

logger = logging.getLogger(__name__)

# (5' end, 3' end, internal) codes for each region type
_SEQ_LOWSIM = (AlertCode.LOWSIM5S, AlertCode.LOWSIM3S, AlertCode.LOWSIMIS)
_CDS_LOWSIM = (AlertCode.LOWSIM5C, AlertCode.LOWSIM3C, AlertCode.LOWSIMIC)
_NONCDS_LOWSIM = (AlertCode.LOWSIM5N, AlertCode.LOWSIM3N, AlertCode.LOWSIMIN)


class CoverageDetector(Detector):
    """Detect problems in the coverage search hit list."""

    family = DetectorFamily.COVERAGE

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        if not ctx.hits:
            return [ctx.alert(AlertCode.NOANNOTN, detail="no hits")]

        top = max(ctx.hits, key=lambda h: h.bit_score)
        if top.strand is Strand.MINUS:
            return [
                ctx.alert(
                    AlertCode.REVCOMPL,
                    seq_coords=top.seq,
                    mdl_coords=top.mdl,
                    detail=f"top hit on minus strand, score:{top.bit_score:.1f}",
                )
            ]

        same = [h for h in ctx.hits if h.strand is top.strand]
        alerts = []
        alerts.extend(self._indefinite_strand(ctx, top))
        alerts.extend(self._duplicate_regions(ctx, same))
        alerts.extend(self._discontinuous(ctx, same))
        alerts.extend(self._low_coverage(ctx, same))
        alerts.extend(self._low_similarity(ctx, same))
        return alerts

    def _indefinite_strand(self, ctx: DetectionContext, top: Hit) -> list[Alert]:
        other = [
            h
            for h in ctx.hits
            if h.strand is top.strand.opposite and h.bit_score >= ctx.config.indefstr
        ]
        if not other:
            return []
        best = max(other, key=lambda h: h.bit_score)
        return [
            ctx.alert(
                AlertCode.INDFSTRN,
                seq_coords=best.seq,
                mdl_coords=best.mdl,
                detail=f"score:{best.bit_score:.1f}>={ctx.config.indefstr:.1f}",
            )
        ]

    def _duplicate_regions(self, ctx: DetectionContext, hits: Sequence[Hit]) -> list[Alert]:
        """One alert listing every hit that duplicates a model region."""
        cfg = ctx.config
        involved: set[int] = set()
        pairs = []
        for i in range(len(hits)):
            for j in range(i + 1, len(hits)):
                a, b = hits[i], hits[j]
                if a.bit_score < cfg.dupreg_min_score or b.bit_score < cfg.dupreg_min_score:
                    continue
                overlap = overlap_len(a.mdl, b.mdl)
                if overlap > cfg.dupreg_min_overlap:
                    involved.update((i, j))
                    pairs.append(f"{overlap} nt overlap between {a.mdl} and {b.mdl}")
        if not involved:
            return []
        chosen = [hits[i] for i in sorted(involved)]
        return [
            ctx.alert(
                AlertCode.DUPREGIN,
                seq_coords=SegmentList(h.seq for h in chosen),
                mdl_coords=SegmentList(h.mdl for h in chosen),
                detail="; ".join(pairs),
            )
        ]

    def _discontinuous(self, ctx: DetectionContext, hits: Sequence[Hit]) -> list[Alert]:
        if len(hits) < 2:
            return []
        mdl_order = sorted(range(len(hits)), key=lambda i: (hits[i].mdl.low, hits[i].mdl.high))
        if mdl_order == list(range(len(hits))):
            return []
        return [
            ctx.alert(
                AlertCode.DISCONTN,
                seq_coords=SegmentList(h.seq for h in hits),
                mdl_coords=SegmentList(h.mdl for h in hits),
                detail="model order of hits:" + ",".join(str(i + 1) for i in mdl_order),
            )
        ]

    def _low_coverage(self, ctx: DetectionContext, hits: Sequence[Hit]) -> list[Alert]:
        length = ctx.seq_length
        if length == 0:
            return []
        covered = merge_intervals(h.seq for h in hits)
        fraction = sum(iv.length for iv in covered) / length
        if fraction >= ctx.config.lowcov:
            return []
        uncovered = missing_intervals(covered, length)
        return [
            ctx.alert(
                AlertCode.LOWCOVRG,
                seq_coords=SegmentList(uncovered),
                detail=f"{fraction:.3f}<{ctx.config.lowcov:.3f}",
            )
        ]

    def _low_similarity(self, ctx: DetectionContext, hits: Sequence[Hit]) -> list[Alert]:
        cfg = ctx.config
        length = ctx.seq_length
        covered = merge_intervals(h.seq for h in hits)
        alerts = []
        for region in missing_intervals(covered, length):
            if region.low == 1:
                position, minimum = 0, cfg.lowsim_term
            elif region.high == length:
                position, minimum = 1, cfg.lowsim_term
            else:
                position, minimum = 2, cfg.lowsim_int
            if region.length < minimum:
                continue

            overlapping = self._overlapping_features(ctx, region)
            if not overlapping:
                alerts.append(
                    ctx.alert(
                        _SEQ_LOWSIM[position],
                        seq_coords=region,
                        mdl_coords=ctx.model_coords_for(region),
                        detail=f"{region.length} nt",
                    )
                )
                continue
            for feature_index, overlap in overlapping:
                cds_like = ctx.feature(feature_index).is_cds or ctx.feature_map.has_identical_cds(
                    feature_index
                )
                codes = _CDS_LOWSIM if cds_like else _NONCDS_LOWSIM
                alerts.append(
                    ctx.alert(
                        codes[position],
                        feature=feature_index,
                        seq_coords=region,
                        mdl_coords=ctx.model_coords_for(region),
                        detail=f"{region.length} nt, {overlap} nt overlap with feature",
                    )
                )
        return alerts

    @staticmethod
    def _overlapping_features(
        ctx: DetectionContext, region: Interval
    ) -> list[tuple[int, int]]:
        """Annotated features overlapping a plus-strand sequence region."""
        found = []
        for feature, mapping in ctx.annotated():
            overlap = 0
            for seg in mapping.seq_coords:
                overlap += overlap_len(seg, region, ignore_strand=True)
            if overlap > 0:
                found.append((feature.index, overlap))
        return found
