"""
Configuration for compatibility test runs.

Defaults live here as module constants. Environment variables override the
defaults, command-line flags override both. The per-path policy file is
loaded as JSON or YAML (PyYAML) and validated against a JSON
Schema before any fixture runs.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from backcompat.exceptions import ConfigError
from backcompat.policy.matcher import PathPolicy, PolicyMatcher
from backcompat.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TESTS_DIR = "backcomp-tests"
DEFAULT_POLICY_FILE = "backcomp.json"
DEFAULT_TARGET_HOST = "localhost"
DEFAULT_TIMEOUT = 30.0
DEFAULT_GRACE_PERIOD = 5.0

WORKERS_ENV = "BACKCOMP_WORKERS"
TIMEOUT_ENV = "BACKCOMP_TIMEOUT"
GRACE_PERIOD_ENV = "BACKCOMP_GRACE_PERIOD"

_HEADER_PATTERNS = {"type": "array", "items": {"type": "string", "minLength": 1}}

POLICY_ENTRY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["path"],
    "additionalProperties": False,
    "properties": {
        "path": {"type": "string", "minLength": 1},
        "headers": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "ignore": _HEADER_PATTERNS,
                "ignoreContent": _HEADER_PATTERNS,
            },
        },
    },
}

POLICY_FILE_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {"type": "array", "items": POLICY_ENTRY_SCHEMA},
        {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "includeDefaults": {"type": "boolean"},
                "paths": {"type": "array", "items": POLICY_ENTRY_SCHEMA},
            },
        },
    ]
}


def default_worker_count() -> int:
    """Twice the CPU count; replay is network-bound."""
    return (os.cpu_count() or 1) * 2


def _env_number(name: str, convert, minimum) -> Optional[Any]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = convert(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{name}={raw!r} is not a valid number") from e
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {raw!r}")
    return value


def env_workers() -> Optional[int]:
    return _env_number(WORKERS_ENV, int, 1)


def env_timeout() -> Optional[float]:
    return _env_number(TIMEOUT_ENV, float, 0.0)


def env_grace_period() -> Optional[float]:
    return _env_number(GRACE_PERIOD_ENV, float, 0.0)


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


@dataclass
class RunSettings:
    """
    Everything a `test` invocation needs, resolved from flags and environment.

    Attributes:
        tests_dir: Root directory holding one subdirectory per version
        constraint: Version constraint expression
        save_version: Version tag to save target responses under, if any
        policy_file: Path of the policy file
        policy_explicit: True when the user passed the policy file path
        base_host: Live reference host; None compares against stored responses
        base_use_https: Use https for the base host
        target_host: Host under test
        target_use_https: Use https for the target host
        workers: Worker thread count
        timeout: Per-request timeout in seconds
        grace_period: Seconds to wait for in-flight work after an interrupt
    """

    tests_dir: str = DEFAULT_TESTS_DIR
    constraint: str = "*"
    save_version: Optional[str] = None
    policy_file: str = DEFAULT_POLICY_FILE
    policy_explicit: bool = False
    base_host: Optional[str] = None
    base_use_https: bool = False
    target_host: str = DEFAULT_TARGET_HOST
    target_use_https: bool = False
    workers: int = 1
    timeout: float = DEFAULT_TIMEOUT
    grace_period: float = DEFAULT_GRACE_PERIOD

    @classmethod
    def from_args(cls, args) -> "RunSettings":
        """
        Build settings from parsed `test` arguments.

        Flags win over environment variables, which win over defaults.

        Raises:
            ConfigError: If a numeric value is out of range
        """
        workers = _first_set(args.workers, env_workers(), default_worker_count())
        timeout = _first_set(args.timeout, env_timeout(), DEFAULT_TIMEOUT)
        grace_period = _first_set(args.grace_period, env_grace_period(), DEFAULT_GRACE_PERIOD)
        if workers < 1:
            raise ConfigError(f"--workers must be at least 1, got {workers}")
        if timeout <= 0:
            raise ConfigError(f"--timeout must be positive, got {timeout}")
        if grace_period < 0:
            raise ConfigError(f"--grace-period must not be negative, got {grace_period}")

        return cls(
            tests_dir=args.dir,
            constraint=args.version,
            save_version=args.save,
            policy_file=args.conf or DEFAULT_POLICY_FILE,
            policy_explicit=args.conf is not None,
            base_host=args.base_host,
            base_use_https=args.base_use_https,
            target_host=args.target_host,
            target_use_https=args.target_use_https,
            workers=workers,
            timeout=timeout,
            grace_period=grace_period,
        )


def _parse_policy_document(text: str, path: str) -> Any:
    """
    Decode policy file content.

    Content starting with "[" or "{" is JSON and goes through the json module,
    which allows the tab indentation YAML rejects. Everything else is YAML.

    Raises:
        ConfigError: If the content is not valid JSON/YAML
    """
    if text.lstrip()[:1] in ("[", "{"):
        try:
            return json.loads(text)
        except ValueError as e:
            raise ConfigError(f"Invalid policy file {path}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid policy file {path}: {e}") from e


def _policy_from_entry(entry: Dict[str, Any]) -> PathPolicy:
    headers = entry.get("headers") or {}
    return PathPolicy(
        path=entry["path"],
        ignore=tuple(headers.get("ignore", ())),
        ignore_content=tuple(headers.get("ignoreContent", ())),
    )


def load_policy_file(path: str, explicit: bool = False) -> Tuple[List[PathPolicy], bool]:
    """
    Load and validate a policy file.

    Args:
        path: JSON or YAML policy file
        explicit: True when the user named the file; a missing explicit file
            is an error, a missing default file means "defaults only"

    Returns:
        (policies in file order, whether the built-in defaults stay in effect)

    Raises:
        ConfigError: If the file is missing (explicit only), unreadable,
            not valid JSON/YAML, or does not match POLICY_FILE_SCHEMA
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        if explicit:
            raise ConfigError(f"Policy file not found: {path}") from e
        logger.debug("No policy file, using defaults", operation="load_policy", context={"path": path})
        return [], True
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read policy file {path}: {e}") from e

    document = _parse_policy_document(text, path)

    if document is None:
        logger.warning("Empty policy file", operation="load_policy", context={"path": path})
        return [], True

    try:
        jsonschema.validate(instance=document, schema=POLICY_FILE_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "(root)"
        raise ConfigError(f"Invalid policy file {path} at {location}: {e.message}") from e

    if isinstance(document, list):
        entries, include_defaults = document, True
    else:
        entries = document.get("paths", [])
        include_defaults = document.get("includeDefaults", True)

    policies = [_policy_from_entry(entry) for entry in entries]
    logger.info(
        f"Loaded {len(policies)} path policies",
        operation="load_policy",
        context={"path": path, "include_defaults": include_defaults},
    )
    return policies, include_defaults


def build_policy_matcher(path: str, explicit: bool = False) -> PolicyMatcher:
    """Load *path* and build the run's PolicyMatcher."""
    policies, include_defaults = load_policy_file(path, explicit)
    if include_defaults:
        return PolicyMatcher(policies)
    return PolicyMatcher(policies, defaults=())
