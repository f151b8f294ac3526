"""Verdict aggregation and alert export.

This module combines the resolved alerts of one sequence into its final
pass/fail verdict, orders the alerts deterministically, and exports
verdicts as tab-delimited files for report formatting.

A sequence passes when none of its resolved alerts is FATAL. Two
sequence-level alerts may be added here:

- ``nmiscftr`` when too many features are demoted to misc_features.
- ``ftskipfl`` when the sequence fails but every fatal alert has been
  suppressed from the reported list, so the failure stays visible.

Example:
    >>> from viralqc.qc import AlertPolicy, VerdictAggregator
    >>> aggregator = VerdictAggregator(AlertPolicy())
    >>> verdict = aggregator.aggregate("seq1", feature_map, alerts)
    >>> verdict.passed
    True
"""

from __future__ import annotations

import csv
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import attrs

from viralqc.core.features import FeatureMap, ModelLibrary
from viralqc.qc.alerts import (
    Alert,
    AlertCode,
    ResolvedAlert,
    report_order,
)
from viralqc.qc.policy import AlertPolicy

logger = logging.getLogger(__name__)

DEFAULT_NMISCFTR_THR = 3


# =============================================================================
# Configuration
# =============================================================================


@attrs.define(frozen=True)
class AggregatorConfig:
    """Configuration for verdict aggregation.

    Attributes:
        nmiscftr_thr: Number of demoted features at which the sequence
            gets an ``nmiscftr`` alert.
    """

    nmiscftr_thr: int = DEFAULT_NMISCFTR_THR

    def validate(self) -> None:
        if self.nmiscftr_thr < 1:
            raise ValueError(f"nmiscftr_thr must be at least 1, got {self.nmiscftr_thr}")


# =============================================================================
# Verdict
# =============================================================================


def alert_sort_key(resolved: ResolvedAlert) -> tuple[int, int, tuple[int, int], int]:
    """Sequence-level first, then feature index, family priority, emission."""
    alert = resolved.alert
    feature = -1 if alert.feature_ref is None else alert.feature_ref
    return (0 if alert.is_sequence_level else 1, feature, report_order(alert.code), alert.emission)


@attrs.define(frozen=True)
class Verdict:
    """Final result for one sequence.

    Attributes:
        sequence_id: Sequence identifier.
        model_id: Model the sequence was annotated with.
        passed: Whether the sequence passes.
        alerts: Reported alerts (suppressed ones removed), ordered.
        all_alerts: Every resolved alert, including suppressed ones.
        demoted_features: Indices of features demoted to misc_features.
    """

    sequence_id: str
    model_id: str
    passed: bool
    alerts: tuple[ResolvedAlert, ...]
    all_alerts: tuple[ResolvedAlert, ...]
    demoted_features: tuple[int, ...] = ()

    @property
    def fatal_alerts(self) -> list[ResolvedAlert]:
        return [a for a in self.all_alerts if a.is_fatal]

    @property
    def codes(self) -> list[AlertCode]:
        """Codes of the reported alerts, in order."""
        return [a.code for a in self.alerts]

    def numbered_alerts(self, seq_idx: int) -> list[tuple[str, ResolvedAlert]]:
        """Reported alerts labelled ``<seq_idx>.<feature_idx>.<alert_idx>``.

        ``feature_idx`` counts alert groups in report order (the
        sequence-level group first), ``alert_idx`` counts alerts within a
        group; both start at 1.
        """
        labelled = []
        group = 0
        alert_idx = 0
        current: object = object()
        for resolved in self.alerts:
            if resolved.alert.feature_ref != current:
                current = resolved.alert.feature_ref
                group += 1
                alert_idx = 0
            alert_idx += 1
            labelled.append((f"{seq_idx}.{group}.{alert_idx}", resolved))
        return labelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence_id": self.sequence_id,
            "model_id": self.model_id,
            "pass": self.passed,
            "alerts": [a.code.value for a in self.alerts],
            "fatal": [a.code.value for a in self.fatal_alerts],
            "demoted_features": list(self.demoted_features),
        }


# =============================================================================
# Aggregator
# =============================================================================


class VerdictAggregator:
    """Build verdicts from raised alerts.

    Example:
        >>> aggregator = VerdictAggregator(policy, AggregatorConfig(nmiscftr_thr=2))
        >>> verdict = aggregator.aggregate("seq1", fmap, alerts)
    """

    def __init__(
        self,
        policy: AlertPolicy | None = None,
        config: AggregatorConfig | None = None,
    ) -> None:
        self.policy = policy or AlertPolicy()
        self.config = config or AggregatorConfig()

    def aggregate(
        self,
        sequence_id: str,
        feature_map: FeatureMap,
        alerts: Sequence[Alert],
    ) -> Verdict:
        """Resolve alerts and form the verdict for one sequence.

        Args:
            sequence_id: Sequence identifier.
            feature_map: Feature map of the sequence's model.
            alerts: Every alert raised for the sequence.

        Returns:
            The immutable verdict.
        """
        resolved = self.policy.resolve(list(alerts), feature_map)
        next_emission = max((a.emission for a in alerts), default=-1) + 1

        demoted = self._demoted_features(resolved)
        if len(demoted) >= self.config.nmiscftr_thr:
            extra = Alert(
                sequence_id=sequence_id,
                model_id=feature_map.model_id,
                code=AlertCode.NMISCFTR,
                detail=f"{len(demoted)}>={self.config.nmiscftr_thr}",
                emission=next_emission,
            )
            next_emission += 1
            resolved.append(self.policy.resolve_one(extra, feature_map))

        resolved.sort(key=alert_sort_key)
        passed = not any(r.is_fatal for r in resolved)
        reported = [r for r in resolved if not r.suppressed]

        if not passed and not any(r.is_fatal for r in reported):
            hidden = sorted({r.code.value for r in resolved if r.is_fatal})
            logger.debug(
                f"{sequence_id}: fatal alerts all suppressed ({', '.join(hidden)}), adding ftskipfl"
            )
            guard = self.policy.resolve_one(
                Alert(
                    sequence_id=sequence_id,
                    model_id=feature_map.model_id,
                    code=AlertCode.FTSKIPFL,
                    detail=",".join(hidden),
                    emission=next_emission,
                ),
                feature_map,
            )
            resolved.append(guard)
            resolved.sort(key=alert_sort_key)
            reported = [r for r in resolved if not r.suppressed]

        return Verdict(
            sequence_id=sequence_id,
            model_id=feature_map.model_id,
            passed=passed,
            alerts=tuple(reported),
            all_alerts=tuple(resolved),
            demoted_features=tuple(demoted),
        )

    @staticmethod
    def _demoted_features(resolved: Iterable[ResolvedAlert]) -> list[int]:
        """Features with a demoting alert and no fatal alert."""
        demoting = set()
        fatal = set()
        for r in resolved:
            ref = r.alert.feature_ref
            if ref is None:
                continue
            if r.demotes_feature:
                demoting.add(ref)
            if r.is_fatal:
                fatal.add(ref)
        return sorted(demoting - fatal)


# =============================================================================
# Summaries
# =============================================================================


def summarize_verdicts(verdicts: Iterable[Verdict]) -> dict[str, Any]:
    """Pass/fail counts and per-code alert counts.

    Returns:
        Dict with ``total``, ``passed``, ``failed`` and ``alert_counts``
        (reported alerts per code, sorted by code).
    """
    total = 0
    passed = 0
    counts: Counter[str] = Counter()
    for verdict in verdicts:
        total += 1
        passed += verdict.passed
        counts.update(a.code.value for a in verdict.alerts)
    return {
        "total": total,
        "passed": passed,
        "failed": total - passed,
        "alert_counts": dict(sorted(counts.items())),
    }


# =============================================================================
# Export
# =============================================================================


ALERT_COLUMNS = [
    "idx",
    "seq_name",
    "model",
    "ftr_type",
    "ftr_name",
    "ftr_idx",
    "alert_code",
    "fail",
    "alert_desc",
    "seq_coords",
    "seq_len",
    "mdl_coords",
    "mdl_len",
    "alert_detail",
]

VERDICT_COLUMNS = [
    "seq_name",
    "model",
    "p/f",
    "num_alerts",
    "num_fatal",
    "alert_codes",
    "demoted_features",
]


def export_alerts_tsv(
    verdicts: Iterable[Verdict],
    library: ModelLibrary,
    output_path: Path | str,
    include_suppressed: bool = False,
) -> int:
    """Write one row per alert.

    Args:
        verdicts: Verdicts in output order; numbering follows this order.
        library: Models the verdicts refer to.
        output_path: Path to output TSV file.
        include_suppressed: Also write alerts suppressed from reports.

    Returns:
        Number of rows written.
    """
    rows = 0
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=ALERT_COLUMNS, delimiter="\t")
        writer.writeheader()

        for seq_idx, verdict in enumerate(verdicts, start=1):
            fmap = library[verdict.model_id]
            labelled = verdict.numbered_alerts(seq_idx)
            if include_suppressed:
                labelled += [("-", r) for r in verdict.all_alerts if r.suppressed]
            for label, resolved in labelled:
                alert = resolved.alert
                if alert.feature_ref is None:
                    ftr_type, ftr_name, ftr_idx = "-", "-", "-"
                else:
                    feature = fmap[alert.feature_ref]
                    ftr_type = feature.display_type
                    ftr_name = feature.name
                    ftr_idx = str(feature.number)
                writer.writerow(
                    {
                        "idx": label,
                        "seq_name": verdict.sequence_id,
                        "model": verdict.model_id,
                        "ftr_type": ftr_type,
                        "ftr_name": ftr_name,
                        "ftr_idx": ftr_idx,
                        "alert_code": alert.code.value,
                        "fail": "yes" if resolved.is_fatal else "no",
                        "alert_desc": alert.info.short_desc,
                        "seq_coords": str(alert.seq_coords),
                        "seq_len": alert.seq_coords.length if not alert.seq_coords.is_blank else "-",
                        "mdl_coords": str(alert.mdl_coords),
                        "mdl_len": alert.mdl_coords.length if not alert.mdl_coords.is_blank else "-",
                        "alert_detail": alert.detail or "-",
                    }
                )
                rows += 1
    logger.info(f"Wrote {rows} alerts to {output_path}")
    return rows


def export_verdicts_tsv(verdicts: Iterable[Verdict], output_path: Path | str) -> None:
    """Write one row per sequence with its pass/fail status."""
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=VERDICT_COLUMNS, delimiter="\t")
        writer.writeheader()
        for verdict in verdicts:
            writer.writerow(
                {
                    "seq_name": verdict.sequence_id,
                    "model": verdict.model_id,
                    "p/f": "PASS" if verdict.passed else "FAIL",
                    "num_alerts": len(verdict.alerts),
                    "num_fatal": sum(1 for a in verdict.alerts if a.is_fatal),
                    "alert_codes": ",".join(a.code.value for a in verdict.alerts) or "-",
                    "demoted_features": ",".join(str(i + 1) for i in verdict.demoted_features) or "-",
                }
            )
