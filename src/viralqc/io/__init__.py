"""Input loaders for viralqc.

Example:
    >>> from viralqc.io import load_bundle
    >>> library, units = load_bundle("run.json")
"""

from viralqc.io.bundle import (
    BundleError,
    feature_map_from_dict,
    feature_map_to_dict,
    load_bundle,
    load_library,
    load_units,
    unit_from_dict,
)

__all__ = [
    "BundleError",
    "feature_map_from_dict",
    "feature_map_to_dict",
    "load_bundle",
    "load_library",
    "load_units",
    "unit_from_dict",
]
