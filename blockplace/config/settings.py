"""
Configuration and Feature Flags for Block Placement

This module provides feature flags and numeric tunables for the placement
core. Values are controlled via environment variables so a batch can be
re-run with different cache policies without code changes.

Usage:
    from blockplace.config.settings import is_enabled, get_scale_tolerance

    if is_enabled('order_insensitive_template_keys'):
        # Overrides supplied in any order share one template
        ...

Environment Variables:
    BLOCKPLACE_UNORDERED_KEYS=true/false  - Compare template keys as multisets
    BLOCKPLACE_SCALE_TOLERANCE=<float>    - Unit-scale tolerance (default 1e-4)
    BLOCKPLACE_PARAMS_APPID=<name>        - DXF app id holding block parameters

Rollback Strategy:
    $ export BLOCKPLACE_UNORDERED_KEYS=false
    Cache keys immediately revert to the order-sensitive policy.
"""

import os
from typing import Dict


DEFAULT_SCALE_TOLERANCE = 1e-4
DEFAULT_PARAMETER_APPID = "BLOCKPLACE_PARAMS"


# Feature flags with environment variable overrides
FEATURE_FLAGS: Dict[str, bool] = {
    # Template keys compare overrides as a multiset instead of a list
    'order_insensitive_template_keys': os.getenv('BLOCKPLACE_UNORDERED_KEYS', 'false').lower() == 'true',
}


def is_enabled(flag: str) -> bool:
    """
    Check if a feature flag is enabled.

    Args:
        flag: Feature flag name (e.g., 'order_insensitive_template_keys')

    Returns:
        True if flag is enabled, False otherwise

    Raises:
        KeyError: If flag name is not recognized

    Example:
        >>> is_enabled('order_insensitive_template_keys')
        False  # Default
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    return FEATURE_FLAGS[flag]


def get_all_flags() -> Dict[str, bool]:
    """
    Get all feature flags and their current state.

    Returns:
        Dictionary of flag names to boolean values
    """
    return FEATURE_FLAGS.copy()


def set_flag(flag: str, enabled: bool) -> None:
    """
    Programmatically set a feature flag (for testing only).

    Args:
        flag: Feature flag name
        enabled: True to enable, False to disable

    Warning:
        This is for testing only. In production, use environment variables.
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    FEATURE_FLAGS[flag] = enabled


def get_scale_tolerance() -> float:
    """
    Absolute tolerance under which a requested scale counts as unit scale.

    Raises:
        ValueError: If BLOCKPLACE_SCALE_TOLERANCE is not a non-negative number
    """
    raw = os.getenv('BLOCKPLACE_SCALE_TOLERANCE')
    if raw is None or raw.strip() == '':
        return DEFAULT_SCALE_TOLERANCE

    try:
        tolerance = float(raw)
    except ValueError:
        raise ValueError(f"BLOCKPLACE_SCALE_TOLERANCE must be a number, got '{raw}'")

    if tolerance < 0:
        raise ValueError(f"BLOCKPLACE_SCALE_TOLERANCE must be >= 0, got {tolerance}")

    return tolerance


def get_parameter_appid() -> str:
    """Application id under which DXF block parameters are stored as XDATA."""
    return os.getenv('BLOCKPLACE_PARAMS_APPID', DEFAULT_PARAMETER_APPID)
