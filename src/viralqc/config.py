"""Configuration management for viralqc.

Configuration is fixed at startup and shared read-only by every
sequence. It can come from:
- Default values (module constants next to each component)
- Configuration files (TOML or JSON)
- Command-line arguments

A configuration file has up to four tables, all optional:

.. code-block:: toml

    [detectors]
    lowcov = 0.85
    nmaxins = 30

    [detectors.frames]
    fst_min_nt_internal = 9

    [policy]
    fail = ["fstlocfi"]
    pass = ["lowcovrg"]
    misc_not_fail = []
    misc_fail = []
    ignore_misc_not_failure = false

    [aggregator]
    nmiscftr_thr = 3

    [execution]
    n_workers = 4
    backend = "threads"

Unknown keys are rejected.

Example:
    >>> from viralqc.config import Config
    >>> config = Config.load("viralqc.toml")
    >>> config.detectors.lowcov
    0.85
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

import attrs

from viralqc.core.frames import FrameConfig
from viralqc.detectors.base import DetectorConfig
from viralqc.parallel.executor import ExecutorBackend
from viralqc.qc.aggregate import AggregatorConfig
from viralqc.qc.policy import AlertPolicy

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration file or value is invalid."""

    pass


# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_N_WORKERS = 1
DEFAULT_BACKEND = ExecutorBackend.THREADS.value

_POLICY_KEYS = {
    "fail": "fail",
    "pass": "pass_",
    "misc_not_fail": "misc_not_fail",
    "misc_fail": "misc_fail",
    "ignore_misc_not_failure": "ignore_misc_not_failure",
}


# =============================================================================
# Configuration Classes
# =============================================================================


@attrs.define(frozen=True)
class ExecutionConfig:
    """Configuration for parallel processing.

    Attributes:
        n_workers: Number of parallel workers (1 = serial).
        backend: Execution backend name (serial, threads, processes).
    """

    n_workers: int = DEFAULT_N_WORKERS
    backend: str = DEFAULT_BACKEND

    def validate(self) -> None:
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {self.n_workers}")
        try:
            ExecutorBackend(self.backend)
        except ValueError:
            choices = ", ".join(b.value for b in ExecutorBackend)
            raise ValueError(f"backend must be one of {choices}, got {self.backend!r}") from None


@attrs.define(frozen=True)
class Config:
    """Main configuration container for viralqc.

    Attributes:
        detectors: Detector thresholds and toggles.
        policy: Alert fatality overrides.
        aggregator: Verdict aggregation settings.
        execution: Parallel processing settings.
    """

    detectors: DetectorConfig = attrs.Factory(DetectorConfig)
    policy: AlertPolicy = attrs.Factory(AlertPolicy)
    aggregator: AggregatorConfig = attrs.Factory(AggregatorConfig)
    execution: ExecutionConfig = attrs.Factory(ExecutionConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load and validate configuration from file.

        Args:
            path: Path to a ``.toml`` or ``.json`` file. If None, returns
                the default configuration.

        Returns:
            Validated configuration object.

        Raises:
            FileNotFoundError: If the configuration file doesn't exist.
            ConfigError: If the configuration file is invalid.
        """
        if path is None:
            return cls()

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()
        try:
            if suffix == ".toml":
                with open(path, "rb") as f:
                    data = tomllib.load(f)
            elif suffix == ".json":
                with open(path) as f:
                    data = json.load(f)
            else:
                raise ConfigError(
                    f"Unsupported configuration format: {path.suffix} (use .toml or .json)"
                )
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e

        config = cls.from_dict(data)
        config.validate()
        logger.debug(f"Loaded configuration from {path}")
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a configuration from nested dictionaries.

        Raises:
            ConfigError: If a key is unknown or a value has the wrong form.
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a table of sections")
        _reject_unknown(data, {"detectors", "policy", "aggregator", "execution"}, "")

        detectors = dict(data.get("detectors", {}))
        frames = detectors.pop("frames", {})
        _reject_unknown(frames, _field_names(FrameConfig), "detectors.frames.")
        detector_fields = _field_names(DetectorConfig) - {"frames"}
        _reject_unknown(detectors, detector_fields, "detectors.")

        policy = data.get("policy", {})
        _reject_unknown(policy, set(_POLICY_KEYS), "policy.")
        aggregator = data.get("aggregator", {})
        _reject_unknown(aggregator, _field_names(AggregatorConfig), "aggregator.")
        execution = data.get("execution", {})
        _reject_unknown(execution, _field_names(ExecutionConfig), "execution.")

        try:
            return cls(
                detectors=DetectorConfig(frames=FrameConfig(**frames), **detectors),
                policy=AlertPolicy.from_names(
                    **{_POLICY_KEYS[k]: v for k, v in policy.items()}
                ),
                aggregator=AggregatorConfig(**aggregator),
                execution=ExecutionConfig(**execution),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(str(e)) from e

    def validate(self) -> None:
        """Validate every section.

        Raises:
            ConfigError: If any value is out of range or an override is
                not permitted.
        """
        for name in ("detectors", "policy", "aggregator", "execution"):
            try:
                getattr(self, name).validate()
            except ValueError as e:
                logger.error(f"Invalid {name} configuration: {e}")
                raise ConfigError(f"{name}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary in the same layout as a configuration file.
        """
        policy = self.policy
        return {
            "detectors": attrs.asdict(self.detectors),
            "policy": {
                "fail": sorted(c.value for c in policy.fail_codes),
                "pass": sorted(c.value for c in policy.pass_codes),
                "misc_not_fail": sorted(c.value for c in policy.misc_not_fail_codes),
                "misc_fail": sorted(c.value for c in policy.misc_fail_codes),
                "ignore_misc_not_failure": policy.ignore_misc_not_failure,
            },
            "aggregator": attrs.asdict(self.aggregator),
            "execution": attrs.asdict(self.execution),
        }

    def save(self, path: Path | str) -> None:
        """Save configuration as JSON.

        Args:
            path: Path to save configuration file.
        """
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")


# =============================================================================
# Helpers
# =============================================================================


def _field_names(cls: type) -> set[str]:
    return {a.name for a in attrs.fields(cls)}


def _reject_unknown(section: Any, allowed: set[str], prefix: str) -> None:
    if not isinstance(section, dict):
        raise ConfigError(f"{prefix.rstrip('.') or 'configuration'} must be a table")
    unknown = sorted(set(section) - allowed)
    if unknown:
        names = ", ".join(prefix + key for key in unknown)
        raise ConfigError(f"Unknown configuration keys: {names}")
