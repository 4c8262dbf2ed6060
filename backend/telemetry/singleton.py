from __future__ import annotations

import logging
import threading

import duckdb

from catalog.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore

logger = logging.getLogger(__name__)

_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def get_store() -> TelemetryStore | None:
    global _STORE
    if not telemetry_enabled():
        return None
    with _STORE_LOCK:
        path = telemetry_path()
        if _STORE is not None:
            # Env can change the path during a dev session (or across tests): reopen.
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            _STORE.stop(timeout_s=2.0)
            try:
                _STORE.conn.close()
            except duckdb.Error:
                logger.debug("previous telemetry connection already closed")
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        # Writes are serialized by the store's single writer thread.
        conn = duckdb.connect(str(path))
        _STORE = TelemetryStore(path=path, conn=conn)
        _STORE.ensure_schema()
        _STORE.start()
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            # Delete even if never opened in this process.
            telemetry_path().unlink(missing_ok=True)
