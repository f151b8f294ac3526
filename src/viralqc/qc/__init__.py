"""Alert registry, fatality policy and verdicts for viralqc.

This module provides:

- The closed registry of alert codes with their static metadata
- Run-specific fatality overrides
- Suppression, demotion and pass/fail aggregation per sequence
- Alert and verdict tables

Example:
    >>> from viralqc.qc import AlertPolicy, VerdictAggregator
    >>> aggregator = VerdictAggregator(AlertPolicy.from_names(fail=["fstlocfi"]))
    >>> verdict = aggregator.aggregate("seq1", fmap, alerts)
    >>> verdict.passed
    False
"""

from viralqc.qc.aggregate import (
    AggregatorConfig,
    Verdict,
    VerdictAggregator,
    export_alerts_tsv,
    export_verdicts_tsv,
    summarize_verdicts,
)
from viralqc.qc.alerts import (
    ALERT_REGISTRY,
    Alert,
    AlertCode,
    AlertInfo,
    AlertScope,
    AlertStatus,
    DetectorFamily,
    ResolvedAlert,
    codes_in_order,
    get_info,
)
from viralqc.qc.policy import AlertPolicy, AlertPolicyError

__all__ = [
    # Alerts
    "ALERT_REGISTRY",
    "Alert",
    "AlertCode",
    "AlertInfo",
    "AlertScope",
    "AlertStatus",
    "DetectorFamily",
    "ResolvedAlert",
    "codes_in_order",
    "get_info",
    # Policy
    "AlertPolicy",
    "AlertPolicyError",
    # Aggregation
    "AggregatorConfig",
    "Verdict",
    "VerdictAggregator",
    "export_alerts_tsv",
    "export_verdicts_tsv",
    "summarize_verdicts",
]
