"""Load, validate, and hot-reload the FlexInsight sync policy.

The policy lives in ``sync_policy.yaml`` alongside this module.  It is loaded
once on first use and cached.  Call ``reload_sync_policy()`` to re-read it
from disk; the previous policy stays active if the new file is invalid.

Usage::

    from flexinsight.policy_loader import get_sync_policy

    policy = get_sync_policy()
    policy.retry.max_retries             # 3
    policy.cache_ttl("stats")            # 300.0 seconds
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("flexinsight.policy")

_POLICY_PATH = Path(__file__).parent / "sync_policy.yaml"

_TTL_KEYS = (
    "stats",
    "prs",
    "progress",
    "exercise_templates",
    "exercise_templates_from_events",
    "routines",
)
_PAGE_SIZE_KEYS = ("workouts", "events", "exercise_templates", "routines", "routine_folders")


# ---------------------------------------------------------------------------
# Typed policy sections
# ---------------------------------------------------------------------------


@dataclass
class RetryPolicy:
    """Backoff settings for the retrying request executor."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30_000


@dataclass
class SyncSettings:
    """Cooldown, scheduling, and pagination settings for remote sync."""

    min_interval_minutes: float = 15.0
    background_interval_minutes: float = 30.0
    page_sizes: dict[str, int] = field(default_factory=dict)

    @property
    def min_interval_seconds(self) -> float:
        return self.min_interval_minutes * 60.0

    @property
    def background_interval_seconds(self) -> float:
        return self.background_interval_minutes * 60.0

    def page_size(self, endpoint: str) -> int:
        return self.page_sizes.get(endpoint, 10)


@dataclass
class SyncPolicy:
    """Complete, validated sync policy.

    Attributes:
        version:            Policy schema version string.
        retry:              Retry/backoff settings.
        sync:               Sync cooldown and pagination settings.
        cache_ttl_minutes:  Read-time TTL per cache key family, in minutes.
    """

    version: str
    retry: RetryPolicy
    sync: SyncSettings
    cache_ttl_minutes: dict[str, float]
    _raw: dict = field(default_factory=dict, repr=False)

    def cache_ttl(self, family: str) -> float:
        """Return the TTL in seconds for a cache key family.

        Unknown families get a TTL of 0, which makes every read a miss.
        """
        return self.cache_ttl_minutes.get(family, 0.0) * 60.0


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_policy.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync policy not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncPolicy:
    """Validate the raw YAML dict and construct a SyncPolicy.

    Missing optional keys fall back to defaults; malformed values are
    collected and reported together.

    Raises:
        ConfigValidationError: If any value is invalid.
    """
    errors: list[str] = []

    def _positive_int(section: dict, key: str, default: int, where: str) -> int:
        value = section.get(key, default)
        try:
            number = int(value)
        except (TypeError, ValueError):
            errors.append(f"{where}.{key} must be an integer, got {value!r}")
            return default
        if number < 0:
            errors.append(f"{where}.{key} = {number} must not be negative")
        return number

    def _positive_float(section: dict, key: str, default: float, where: str) -> float:
        value = section.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{where}.{key} must be a number, got {value!r}")
            return default
        if number < 0:
            errors.append(f"{where}.{key} = {number} must not be negative")
        return number

    version = str(raw.get("version", "1.0"))

    # ── Retry ──
    retry_raw = raw.get("retry") or {}
    retry = RetryPolicy(
        max_retries=_positive_int(retry_raw, "max_retries", 3, "retry"),
        base_delay_ms=_positive_int(retry_raw, "base_delay_ms", 1000, "retry"),
        max_delay_ms=_positive_int(retry_raw, "max_delay_ms", 30_000, "retry"),
    )
    if retry.max_delay_ms < retry.base_delay_ms:
        errors.append(
            f"retry.max_delay_ms ({retry.max_delay_ms}) is below "
            f"retry.base_delay_ms ({retry.base_delay_ms})"
        )

    # ── Sync ──
    sync_raw = raw.get("sync") or {}
    page_sizes: dict[str, int] = {}
    pages_raw = sync_raw.get("page_sizes") or {}
    if not isinstance(pages_raw, dict):
        errors.append("sync.page_sizes must be a mapping of endpoint→size")
        pages_raw = {}
    for endpoint in _PAGE_SIZE_KEYS:
        size = _positive_int(pages_raw, endpoint, 10, "sync.page_sizes")
        if size == 0:
            errors.append(f"sync.page_sizes.{endpoint} must be at least 1")
        page_sizes[endpoint] = size
    sync = SyncSettings(
        min_interval_minutes=_positive_float(sync_raw, "min_interval_minutes", 15.0, "sync"),
        background_interval_minutes=_positive_float(
            sync_raw, "background_interval_minutes", 30.0, "sync"
        ),
        page_sizes=page_sizes,
    )

    # ── Cache TTLs ──
    ttl_raw = raw.get("cache_ttl_minutes") or {}
    if not isinstance(ttl_raw, dict):
        errors.append("cache_ttl_minutes must be a mapping of family→minutes")
        ttl_raw = {}
    cache_ttl_minutes = {
        key: _positive_float(ttl_raw, key, 5.0, "cache_ttl_minutes") for key in _TTL_KEYS
    }
    unknown = sorted(set(ttl_raw) - set(_TTL_KEYS))
    if unknown:
        logger.warning("Ignoring unknown cache TTL families: %s", ", ".join(unknown))

    if errors:
        raise ConfigValidationError(
            f"sync_policy.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncPolicy(
        version=version,
        retry=retry,
        sync=sync,
        cache_ttl_minutes=cache_ttl_minutes,
        _raw=raw,
    )


def load_sync_policy(path: Path | None = None) -> SyncPolicy:
    """Load and validate the sync policy from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_policy.yaml by default.

    Returns:
        Validated SyncPolicy instance.
    """
    target = path or _POLICY_PATH
    policy = _validate_and_build(_load_yaml(target))
    logger.info("Loaded sync policy v%s from %s", policy.version, target)
    return policy


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_policy: SyncPolicy | None = None
_policy_lock = threading.Lock()


def get_sync_policy() -> SyncPolicy:
    """Return the global SyncPolicy singleton, loading it on first call."""
    global _policy
    if _policy is None:
        with _policy_lock:
            if _policy is None:  # double-checked locking
                _policy = load_sync_policy()
    return _policy


def reload_sync_policy(path: Path | None = None) -> SyncPolicy:
    """Reload the policy from disk and replace the global singleton.

    If validation fails the old policy is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new policy is invalid.
        FileNotFoundError:     If the policy file is missing.
    """
    global _policy
    new_policy = load_sync_policy(path)  # validate before acquiring lock
    with _policy_lock:
        old_version = _policy.version if _policy else "none"
        _policy = new_policy
    logger.info("Reloaded sync policy: %s → %s", old_version, new_policy.version)
    return new_policy
