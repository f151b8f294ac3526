"""Run the detector families of one sequence in fixed order."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import attrs

from viralqc.detectors.ambiguity import AmbiguityDetector
from viralqc.detectors.base import DetectionContext, Detector, DetectorInvariantError
from viralqc.detectors.boundaries import BoundaryDetector
from viralqc.detectors.classification import ClassificationDetector
from viralqc.detectors.codons import CodonDetector
from viralqc.detectors.coverage import CoverageDetector
from viralqc.detectors.indels import IndelDetector
from viralqc.detectors.structure import StructureDetector
from viralqc.qc.alerts import Alert, DetectorFamily

logger = logging.getLogger(__name__)


def default_detectors() -> list[Detector]:
    """One detector per family, in report priority order."""
    return [
        CoverageDetector(),
        ClassificationDetector(),
        StructureDetector(),
        CodonDetector(),
        BoundaryDetector(),
        IndelDetector(),
        AmbiguityDetector(),
    ]


class DetectorSet:
    """Ordered collection of detectors.

    Alerts are numbered in emission order across all detectors so that
    ties in report ordering are broken deterministically.

    Example:
        >>> detectors = DetectorSet()
        >>> alerts = detectors.run(ctx)
    """

    def __init__(self, detectors: Sequence[Detector] | None = None) -> None:
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        order = list(DetectorFamily)
        self.detectors.sort(key=lambda d: order.index(d.family))

    def __len__(self) -> int:
        return len(self.detectors)

    @property
    def families(self) -> list[DetectorFamily]:
        return [d.family for d in self.detectors]

    def run(self, ctx: DetectionContext, start_emission: int = 0) -> list[Alert]:
        """Run every enabled detector on one sequence.

        Args:
            ctx: Evidence for the sequence.
            start_emission: Emission number of the first alert.

        Returns:
            Alerts in emission order.

        Raises:
            DetectorInvariantError: If a detector finds internal
                inconsistency, or raises an alert for another sequence.
        """
        alerts: list[Alert] = []
        for detector in self.detectors:
            if not ctx.config.is_enabled(detector.family):
                continue
            found = detector.detect(ctx)
            for alert in found:
                if alert.sequence_id != ctx.sequence_id:
                    raise DetectorInvariantError(
                        f"{detector!r} raised {alert.code.value} for {alert.sequence_id} "
                        f"while processing {ctx.sequence_id}"
                    )
                alerts.append(attrs.evolve(alert, emission=start_emission + len(alerts)))
            if found:
                logger.debug(
                    f"{ctx.sequence_id}: {detector.family.value} raised "
                    f"{', '.join(a.code.value for a in found)}"
                )
        return alerts
