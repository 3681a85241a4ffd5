"""Template watcher — polls the template's modification time.

When the mtime changes the configured callback runs on the watcher thread.
Callback failures are logged and the previous state stays in effect; the
next detected change triggers another attempt.
"""

import logging
import threading
from typing import Callable, Optional

from backend.core.errors import SchemaSyncFailed
from backend.core.schema_sync import SchemaReconciler
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import ValidationCache

logger = logging.getLogger(__name__)


class TemplateWatcher:
    def __init__(
        self,
        store: TemplateStore,
        on_change: Callable[[], None],
        interval: float = 1.0,
    ):
        self._store = store
        self._on_change = on_change
        self._interval = interval
        self._last_seen: Optional[int] = store.modified_time()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> bool:
        """Check the template once. Returns True if a change was handled."""
        current = self._store.modified_time()
        if current == self._last_seen:
            return False
        self._last_seen = current
        if current is None:
            logger.warning(f"Template file {self._store.path} disappeared")
            return False

        logger.info("Template file changed, syncing database schema")
        try:
            self._on_change()
        except Exception as e:
            logger.error(f"Template change handler failed: {e}", exc_info=True)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.poll_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="template-watcher", daemon=True)
        self._thread.start()
        logger.info(f"Watching {self._store.path} every {self._interval}s")

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self._interval * 2)
            self._thread = None
            logger.info("Template watcher stopped")


def resync_on_change(
    reconciler: SchemaReconciler,
    cache: ValidationCache,
) -> Callable[[], None]:
    """Build the watcher callback: drop cached allowed values, then re-sync the table."""

    def _handle() -> None:
        cache.invalidate()
        try:
            changes = reconciler.sync()
        except SchemaSyncFailed as e:
            logger.error(f"Background schema sync failed, keeping previous schema: {e.message}")
            return
        logger.info(f"Database schema synchronized with updated template ({len(changes)} changes)")

    return _handle
