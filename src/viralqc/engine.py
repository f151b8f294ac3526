"""Per-sequence annotation QC pipeline.

For each sequence unit the engine:

1. Builds the alignment view and detection context.
2. Runs every detector family in fixed order.
3. Drops feature-level alerts when an alert prevents annotation.
4. Propagates ``peptrans`` to the mat_peptides of any CDS carrying an
   alert that is fatal by policy.
5. Resolves fatality and suppression, and forms the verdict.

Units are independent. A unit that hits an internal inconsistency
produces no verdict; the error is logged and, in batch mode, reported
in its task result without affecting other units.

Example:
    >>> from viralqc.engine import AnnotationEngine
    >>> engine = AnnotationEngine(library)
    >>> verdict = engine.run_unit(unit)
    >>> verdicts, results, stats = engine.run_units(units, n_workers=4)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from viralqc.config import Config
from viralqc.core.alignment import AlignmentError
from viralqc.core.evidence import SequenceUnit
from viralqc.core.features import FeatureMap, ModelLibrary
from viralqc.detectors.base import DetectionContext, DetectorConfig, DetectorInvariantError
from viralqc.detectors.dispatch import DetectorSet
from viralqc.parallel.executor import (
    ExecutionStats,
    ExecutorBackend,
    ParallelExecutor,
    TaskResult,
)
from viralqc.qc.aggregate import AggregatorConfig, Verdict, VerdictAggregator
from viralqc.qc.alerts import Alert, AlertCode
from viralqc.qc.policy import AlertPolicy
from viralqc.utils.logging import SequenceLogger

logger = logging.getLogger(__name__)


class AnnotationEngine:
    """Judge sequences against their models.

    The engine holds only read-only state and can be shared by threads
    or sent to worker processes.

    Attributes:
        library: Feature maps keyed by model id.
        detector_config: Detector thresholds and toggles.
        policy: Alert fatality overrides.
        aggregator: Verdict aggregator.
        detectors: Detector families in run order.
    """

    def __init__(
        self,
        library: ModelLibrary,
        detector_config: DetectorConfig | None = None,
        policy: AlertPolicy | None = None,
        aggregator_config: AggregatorConfig | None = None,
        detectors: DetectorSet | None = None,
    ) -> None:
        self.library = library
        self.detector_config = detector_config or DetectorConfig()
        self.policy = policy or AlertPolicy()
        self.aggregator = VerdictAggregator(self.policy, aggregator_config)
        self.detectors = detectors or DetectorSet()

    @classmethod
    def from_config(cls, library: ModelLibrary, config: Config) -> "AnnotationEngine":
        """Create an engine from a validated configuration."""
        return cls(
            library,
            detector_config=config.detectors,
            policy=config.policy,
            aggregator_config=config.aggregator,
        )

    # -------------------------------------------------------------------------
    # Single unit
    # -------------------------------------------------------------------------

    def run_unit(self, unit: SequenceUnit) -> Verdict:
        """Run all detectors on one sequence and form its verdict.

        Args:
            unit: Evidence for the sequence.

        Returns:
            The sequence's verdict.

        Raises:
            DetectorInvariantError: If the unit references an unknown model
                or a detector finds internal inconsistency.
            AlignmentError: If the unit's alignment is malformed.
        """
        log = SequenceLogger(logger, unit.sequence_id)
        try:
            feature_map = self.library[unit.model_id]
        except KeyError:
            log.error(f"unknown model {unit.model_id}")
            raise DetectorInvariantError(
                f"{unit.sequence_id}: unknown model {unit.model_id}"
            ) from None

        try:
            ctx = DetectionContext.from_unit(unit, feature_map, self.detector_config)
            alerts = self.detectors.run(ctx)
        except (DetectorInvariantError, AlignmentError) as e:
            log.error(f"processing aborted: {e}")
            raise

        if any(a.info.prevents_annotation for a in alerts):
            alerts = [a for a in alerts if a.is_sequence_level]
        alerts.extend(self._propagate(feature_map, alerts))

        verdict = self.aggregator.aggregate(unit.sequence_id, feature_map, alerts)
        log.debug(f"{'PASS' if verdict.passed else 'FAIL'} ({len(verdict.alerts)} alerts)")
        return verdict

    def _propagate(self, feature_map: FeatureMap, alerts: Sequence[Alert]) -> list[Alert]:
        """``peptrans`` on each mat_peptide whose parent CDS carries a fatal alert.

        Alerts demoted on an expendable CDS are non-fatal and do not propagate.
        """
        emission = max((a.emission for a in alerts), default=-1) + 1
        propagated = []
        for cds in feature_map.cds_features():
            causes = []
            for alert in alerts:
                if alert.feature_ref != cds.index:
                    continue
                resolved = self.policy.resolve_one(alert, feature_map)
                if resolved.is_fatal:
                    causes.append(alert.code.value)
            if not causes:
                continue
            for child in feature_map.children_of(cds.index):
                if not child.is_mat_peptide:
                    continue
                propagated.append(
                    Alert(
                        sequence_id=alerts[0].sequence_id,
                        model_id=feature_map.model_id,
                        code=AlertCode.PEPTRANS,
                        feature_ref=child.index,
                        detail=f"{feature_map.label(cds.index)}: {','.join(sorted(set(causes)))}",
                        emission=emission,
                    )
                )
                emission += 1
        return propagated

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def run_units(
        self,
        units: Sequence[SequenceUnit],
        n_workers: int = 1,
        backend: ExecutorBackend | str = ExecutorBackend.THREADS,
        progress_callback=None,
    ) -> tuple[list[Verdict], list[TaskResult], ExecutionStats]:
        """Run many units on a bounded worker pool.

        Args:
            units: Sequence units to judge.
            n_workers: Number of workers (1 = serial).
            backend: Execution backend.
            progress_callback: Called with (completed, total, sequence_id).

        Returns:
            Tuple of (verdicts of successful units, task results, stats).
            Both lists are in completion order.
        """
        executor = ParallelExecutor(
            n_workers=n_workers,
            backend=backend,
            progress_callback=progress_callback,
        )
        results, stats = executor.map_items(
            self.run_unit, units, key=_unit_key, continue_on_error=True
        )
        verdicts = []
        for result in results:
            if result.success:
                verdicts.append(result.result)
            else:
                logger.error(
                    f"{result.task_id}: no verdict ({result.error_type}: {result.error})"
                )
        return verdicts, results, stats


def _unit_key(unit: SequenceUnit) -> str:
    return unit.sequence_id
