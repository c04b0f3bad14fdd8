"""
Enablement gate for runs against a remote store.

Remote runs cost money and need credentials, so they are opt-in. The gate
never raises: a malformed flag or a missing option means "disabled", and
callers skip rather than fail.
"""

import logging
from typing import List

from fsconform import config as cfg

logger = logging.getLogger(__name__)

REQUIRED_OPTIONS = (cfg.ACCESS_KEY, cfg.SECRET_KEY, cfg.TEST_URI)


def missing_options(config) -> List[str]:
    """Required options that are absent or blank"""
    missing = []
    for key in REQUIRED_OPTIONS:
        try:
            value = config.get(key)
        except Exception:
            value = None
        if value is None or str(value).strip() == "":
            missing.append(key)
    return missing


def flag_set(config) -> bool:
    try:
        return config.get_bool(cfg.TESTS_ENABLED, False)
    except Exception:
        logger.warning("Unreadable %s flag, treating as disabled", cfg.TESTS_ENABLED)
        return False


def is_enabled(config) -> bool:
    """True only if the opt-in flag is set and every required option is present"""
    if config is None:
        return False
    return flag_set(config) and not missing_options(config)


def disabled_reason(config) -> str:
    """Human readable reason for a closed gate, or "" when open"""
    if config is None:
        return "no configuration"
    if not flag_set(config):
        return f"remote tests disabled ({cfg.TESTS_ENABLED} is not set)"
    missing = missing_options(config)
    if missing:
        return f"remote tests disabled (missing: {', '.join(missing)})"
    return ""
