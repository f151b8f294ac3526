"""Classification-confidence detectors.

Score margins are compared per nucleotide of the sequence. All alerts
are sequence-level and require classification scores; without them the
detector raises nothing.
"""

from __future__ import annotations

import logging

from viralqc.core.evidence import ModelScore
from viralqc.detectors.base import DetectionContext, Detector
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily

logger = logging.getLogger(__name__)


class ClassificationDetector(Detector):
    """Detect weak or unexpected model assignments."""

    family = DetectorFamily.CLASSIFICATION

    def detect(self, ctx: DetectionContext) -> list[Alert]:
        scores = ctx.classification
        if scores is None or ctx.seq_length == 0:
            return []
        cfg = ctx.config
        length = ctx.seq_length
        best = scores.best
        alerts = []

        if scores.second is not None:
            margin = (best.score - scores.second.score) / length
            if margin < cfg.indefclas:
                alerts.append(
                    ctx.alert(
                        AlertCode.INDFCLAS,
                        detail=(
                            f"{margin:.3f}<{cfg.indefclas:.3f} bits/nt, "
                            f"second model {scores.second.model_id}"
                        ),
                    )
                )

        if cfg.expected_group is not None and best.group != cfg.expected_group:
            alerts.append(
                self._expected(
                    ctx,
                    best,
                    scores.best_in_group,
                    cfg.expected_group,
                    AlertCode.QSTGROUP,
                    AlertCode.INCGROUP,
                )
            )
        if cfg.expected_subgroup is not None and best.subgroup != cfg.expected_subgroup:
            alerts.append(
                self._expected(
                    ctx,
                    best,
                    scores.best_in_subgroup,
                    cfg.expected_subgroup,
                    AlertCode.QSTSBGRP,
                    AlertCode.INCSBGRP,
                )
            )

        per_nt = best.score / length
        if per_nt < cfg.lowsc:
            alerts.append(
                ctx.alert(AlertCode.LOWSCORE, detail=f"{per_nt:.3f}<{cfg.lowsc:.3f} bits/nt")
            )

        total = best.score + best.bias
        if total > 0:
            fraction = best.bias / total
            if fraction >= cfg.biasfract:
                alerts.append(
                    ctx.alert(
                        AlertCode.BIASDSEQ,
                        detail=f"{fraction:.3f}>={cfg.biasfract:.3f} bias fraction",
                    )
                )
        return alerts

    @staticmethod
    def _expected(
        ctx: DetectionContext,
        best: ModelScore,
        best_expected: ModelScore | None,
        expected: str,
        questionable: AlertCode,
        incorrect: AlertCode,
    ) -> Alert:
        """Questionable when the expected set scores close to the best model."""
        if best_expected is None:
            return ctx.alert(incorrect, detail=f"no model in {expected} scored")
        margin = (best.score - best_expected.score) / ctx.seq_length
        if margin > ctx.config.incspec:
            return ctx.alert(
                incorrect,
                detail=f"{margin:.3f}>{ctx.config.incspec:.3f} bits/nt to {best_expected.model_id}",
            )
        return ctx.alert(
            questionable,
            detail=f"best model {best.model_id} not in {expected}",
        )
