from .settings import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_POLICY_FILE,
    DEFAULT_TARGET_HOST,
    DEFAULT_TESTS_DIR,
    DEFAULT_TIMEOUT,
    RunSettings,
    build_policy_matcher,
    default_worker_count,
    load_policy_file,
)

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_POLICY_FILE",
    "DEFAULT_TARGET_HOST",
    "DEFAULT_TESTS_DIR",
    "DEFAULT_TIMEOUT",
    "RunSettings",
    "build_policy_matcher",
    "default_worker_count",
    "load_policy_file",
]
