"""
Run configuration

Options come from three layers, last wins:

    1) built-in defaults
    2) an optional YAML file (same keys as below)
    3) S3_* environment variables

The resulting RunConfiguration is immutable; code that needs a variant
builds a new one with `with_options()`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml

# Option names
TESTS_ENABLED = "s3_tests_enabled"
ACCESS_KEY = "s3_access_key"
SECRET_KEY = "s3_secret_key"
TEST_URI = "s3_test_uri"
ENDPOINT = "s3_endpoint"
REGION = "s3_region"
VERIFY_SSL = "verify_ssl"
LOCAL_TMP_DIR = "local_tmp_dir"
TEST_ENTRY_COUNT = "test_entry_count"
SCENE_LIST_URI = "scene_list_uri"
SCENE_LIST_EXPECTED_LINES = "scene_list_expected_lines"

DEFAULTS: Dict[str, Any] = {
    TESTS_ENABLED: False,
    REGION: "us-east-1",
    VERIFY_SSL: False,
    TEST_ENTRY_COUNT: 10000,
}

ENV_VARS: Dict[str, str] = {
    TESTS_ENABLED: "S3_TESTS_ENABLED",
    ACCESS_KEY: "S3_ACCESS_KEY",
    SECRET_KEY: "S3_SECRET_KEY",
    TEST_URI: "S3_TEST_URI",
    ENDPOINT: "S3_ENDPOINT",
    REGION: "S3_REGION",
    VERIFY_SSL: "S3_VERIFY_SSL",
    LOCAL_TMP_DIR: "S3_LOCAL_TMP_DIR",
    TEST_ENTRY_COUNT: "S3_TEST_ENTRY_COUNT",
    SCENE_LIST_URI: "S3_SCENE_LIST_URI",
    SCENE_LIST_EXPECTED_LINES: "S3_SCENE_LIST_EXPECTED_LINES",
}

_TRUE_VALUES = ("1", "true", "yes", "on")


def parse_bool(value: Any) -> bool:
    """Interpret config/env style booleans ("1", "true", "yes", True)"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class RunConfiguration:
    """Read-only mapping of option name -> value for one harness run"""

    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        merged = dict(DEFAULTS)
        merged.update(self.options)
        object.__setattr__(self, "options", MappingProxyType(merged))

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        if key not in self.options:
            return default
        return parse_bool(self.options[key])

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.options.get(key)
        if value is None or value == "":
            return default
        return int(value)

    def require(self, key: str) -> str:
        """Return a non-empty string option or raise KeyError"""
        value = self.options.get(key)
        if value is None or str(value).strip() == "":
            raise KeyError(f"Required option '{key}' is not set")
        return str(value).strip()

    def with_options(self, **overrides: Any) -> "RunConfiguration":
        merged = dict(self.options)
        merged.update(overrides)
        return RunConfiguration(merged)

    def connection_options(self) -> Dict[str, Any]:
        """
        Options handed to a filesystem binding.

        Only keys with a value are included so bindings fall back to their
        own defaults (e.g. the boto3 credential chain) for the rest.
        """
        scratch = self.get(LOCAL_TMP_DIR)
        options = {
            "access_key": self.get(ACCESS_KEY),
            "secret_key": self.get(SECRET_KEY),
            "endpoint_url": self.get(ENDPOINT),
            "region": self.get(REGION),
            "buffer_dir": str(Path(scratch).absolute()) if scratch else None,
            "verify_ssl": self.get_bool(VERIFY_SSL),
        }
        return {k: v for k, v in options.items() if v is not None and v != ""}

    def redacted(self) -> Dict[str, Any]:
        """Options with secrets masked, for logging"""
        return {
            k: ("****" if k in (ACCESS_KEY, SECRET_KEY) and v else v)
            for k, v in self.options.items()
        }


def options_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect every recognised S3_* variable that is set"""
    environ = os.environ if environ is None else environ
    found = {}
    for key, var in ENV_VARS.items():
        value = environ.get(var)
        if value is not None:
            found[key] = value
    return found


def options_from_yaml(path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top-level.")
    return data


def load_config(
    path=None, environ: Optional[Mapping[str, str]] = None
) -> RunConfiguration:
    """Build a RunConfiguration from defaults, an optional YAML file and env"""
    options: Dict[str, Any] = {}
    if path:
        options.update(options_from_yaml(path))
    options.update(options_from_env(environ))
    return RunConfiguration(options)
