from __future__ import annotations

import threading
from datetime import timedelta

from cmcimock.config import get_settings, reset_settings_cache
from cmcimock.logging import get_logger
from cmcimock.service.auth import AuthService, CredentialValidator
from cmcimock.service.lifecycle import ResultSetSweeper
from cmcimock.service.result_cache import ResultCacheService
from cmcimock.storage.memory import MemoryStore

logger = get_logger(__name__)


class Runtime:
    """Holds the stores and services shared by every request."""

    def __init__(self):
        self.settings = get_settings()
        self.store = MemoryStore()
        self.auth = AuthService(
            self.store.sessions,
            self.store.tokens,
            CredentialValidator(self.settings.credential_pairs()),
        )
        self.result_cache = ResultCacheService(
            self.store.result_sets,
            ttl=timedelta(minutes=self.settings.result_set_ttl_minutes),
            default_count=self.settings.default_record_count,
            max_orderby_fields=self.settings.max_orderby_fields,
        )
        self.legacy_cache = self.store.legacy_cache
        self.sweeper = ResultSetSweeper(
            self.result_cache, interval_seconds=self.settings.sweep_interval_seconds
        )
        logger.info(
            "runtime_initialized",
            users=sorted(self.settings.credential_pairs()),
            result_set_ttl_minutes=self.settings.result_set_ttl_minutes,
            sweep_interval_seconds=self.settings.sweep_interval_seconds,
            test_mode=self.settings.test_mode,
        )


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
