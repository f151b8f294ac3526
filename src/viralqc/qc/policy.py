"""Fatality resolution and co-occurrence suppression.

This module turns raised alerts into resolved alerts. Each instance is
resolved by the following rules, applied in order:

1. Always-fatal codes are FATAL regardless of any override.
2. Other codes start at their registry default.
3. The fail list makes non-fatal codes FATAL; the pass list makes fatal
   codes NON_FATAL. Each list only works in its permitted direction.
4. A FATAL alert on an expendable feature whose code is demotable becomes
   NON_FATAL and marks the feature for demotion to a misc_feature.
5. An alert whose code is suppressed by a co-occurring code on the same
   feature (or, for sequence-level codes, the same sequence) is removed
   from the reported list. Suppression never changes fatality.

Example:
    >>> from viralqc.qc.policy import AlertPolicy
    >>> policy = AlertPolicy.from_names(fail=["fstlocfi"], pass_=["lowcovrg"])
    >>> policy.validate()
    >>> resolved = policy.resolve(alerts, feature_map)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import attrs

from viralqc.core.features import FeatureMap
from viralqc.qc.alerts import (
    ALERT_REGISTRY,
    Alert,
    AlertCode,
    AlertStatus,
    ResolvedAlert,
)

logger = logging.getLogger(__name__)


class AlertPolicyError(ValueError):
    """Raised when user overrides violate the alert registry rules."""

    pass


def _to_codes(values: Iterable[AlertCode | str]) -> frozenset[AlertCode]:
    codes = set()
    for value in values:
        if isinstance(value, AlertCode):
            codes.add(value)
            continue
        try:
            codes.add(AlertCode.parse(value))
        except ValueError as e:
            raise AlertPolicyError(str(e)) from None
    return frozenset(codes)


# =============================================================================
# Policy
# =============================================================================


@attrs.define(frozen=True)
class AlertPolicy:
    """Run-specific overrides of the alert registry.

    Fixed at startup and shared read-only by every sequence.

    Attributes:
        fail_codes: Default non-fatal codes forced to fatal.
        pass_codes: Default fatal codes forced to non-fatal.
        misc_not_fail_codes: Codes added to the demotable set.
        misc_fail_codes: Codes removed from the demotable set.
        ignore_misc_not_failure: Never demote; expendable features fail
            like any other.
    """

    fail_codes: frozenset[AlertCode] = attrs.field(factory=frozenset, converter=_to_codes)
    pass_codes: frozenset[AlertCode] = attrs.field(factory=frozenset, converter=_to_codes)
    misc_not_fail_codes: frozenset[AlertCode] = attrs.field(
        factory=frozenset, converter=_to_codes
    )
    misc_fail_codes: frozenset[AlertCode] = attrs.field(factory=frozenset, converter=_to_codes)
    ignore_misc_not_failure: bool = False

    @classmethod
    def from_names(
        cls,
        fail: Iterable[str] = (),
        pass_: Iterable[str] = (),
        misc_not_fail: Iterable[str] = (),
        misc_fail: Iterable[str] = (),
        ignore_misc_not_failure: bool = False,
    ) -> "AlertPolicy":
        """Build a policy from code names such as ``"fstlocfi"``.

        Raises:
            AlertPolicyError: If a name is not a known code.
        """
        return cls(
            fail_codes=fail,
            pass_codes=pass_,
            misc_not_fail_codes=misc_not_fail,
            misc_fail_codes=misc_fail,
            ignore_misc_not_failure=ignore_misc_not_failure,
        )

    def validate(self) -> None:
        """Check every override against the registry.

        Raises:
            AlertPolicyError: If an override goes in a forbidden direction.
        """
        errors = []
        for code in sorted(self.fail_codes, key=lambda c: c.value):
            info = ALERT_REGISTRY[code]
            if info.causes_failure:
                errors.append(f"{code.value} already causes failure; remove it from the fail list")
        for code in sorted(self.pass_codes, key=lambda c: c.value):
            info = ALERT_REGISTRY[code]
            if info.always_fatal:
                errors.append(f"{code.value} always causes failure and cannot be passed")
            elif not info.causes_failure:
                errors.append(f"{code.value} does not cause failure; remove it from the pass list")
        for code in sorted(self.misc_not_fail_codes, key=lambda c: c.value):
            info = ALERT_REGISTRY[code]
            if not info.is_feature_level:
                errors.append(f"{code.value} is sequence-level and cannot demote a feature")
            elif info.misc_not_failure:
                errors.append(f"{code.value} already demotes expendable features")
        for code in sorted(self.misc_fail_codes, key=lambda c: c.value):
            if not ALERT_REGISTRY[code].misc_not_failure:
                errors.append(f"{code.value} does not demote expendable features")
        overlap = self.fail_codes & self.pass_codes
        if overlap:
            errors.append(f"codes in both fail and pass lists: {sorted(c.value for c in overlap)}")

        if errors:
            for message in errors:
                logger.error(f"Alert policy: {message}")
            raise AlertPolicyError("; ".join(errors))

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def is_fatal(self, code: AlertCode) -> bool:
        """Fatality of a code after overrides, before demotion."""
        info = ALERT_REGISTRY[code]
        if info.always_fatal:
            return True
        if code in self.fail_codes:
            return True
        if code in self.pass_codes:
            return False
        return info.causes_failure

    def is_demotable(self, code: AlertCode) -> bool:
        """Whether a fatal code demotes an expendable feature instead of failing."""
        if self.ignore_misc_not_failure:
            return False
        info = ALERT_REGISTRY[code]
        if info.always_fatal or not info.is_feature_level:
            return False
        if code in self.misc_fail_codes:
            return False
        return info.misc_not_failure or code in self.misc_not_fail_codes

    def resolve_one(self, alert: Alert, feature_map: FeatureMap) -> ResolvedAlert:
        """Resolve a single alert, without suppression."""
        if not self.is_fatal(alert.code):
            return ResolvedAlert(alert, AlertStatus.NON_FATAL)
        if alert.feature_ref is not None:
            feature = feature_map[alert.feature_ref]
            if feature.is_expendable and self.is_demotable(alert.code):
                return ResolvedAlert(alert, AlertStatus.NON_FATAL, demotes_feature=True)
        return ResolvedAlert(alert, AlertStatus.FATAL)

    def resolve(
        self, alerts: Sequence[Alert], feature_map: FeatureMap
    ) -> list[ResolvedAlert]:
        """Resolve and mark suppression for every alert of one sequence.

        Args:
            alerts: All alerts raised for the sequence.
            feature_map: Feature map of the sequence's model.

        Returns:
            Resolved alerts in input order.
        """
        present: dict[int | None, set[AlertCode]] = {}
        for alert in alerts:
            present.setdefault(alert.feature_ref, set()).add(alert.code)

        resolved = []
        for alert in alerts:
            result = self.resolve_one(alert, feature_map)
            suppressors = ALERT_REGISTRY[alert.code].suppressed_by
            if suppressors & present[alert.feature_ref]:
                result = attrs.evolve(result, suppressed=True)
            resolved.append(result)
        return resolved
