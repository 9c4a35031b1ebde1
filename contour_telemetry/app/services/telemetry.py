"""Publish per-cycle descriptor arrays to a NetworkTables table."""
from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from networktables import NetworkTables

from ..models import DEFAULT_TABLE, TelemetryBatch

LOGGER = logging.getLogger(__name__)


class TelemetryUnavailableError(RuntimeError):
    """Raised when the NetworkTables server cannot be reached at startup."""


class TelemetryPublisher:
    """Owns the NetworkTables client connection and the contours table.

    Publishing overwrites the previous cycle's arrays and never waits for an
    acknowledgement. A failed put leaves the old values visible to subscribers.
    """

    def __init__(self, table_name: str = DEFAULT_TABLE, instance: Any = NetworkTables) -> None:
        self.table_name = table_name
        self._nt = instance
        self._table: Optional[Any] = None
        self.publish_count = 0

    def connect(self, server: str, timeout: float = 5.0) -> None:
        """Start client mode against ``server`` and wait up to ``timeout`` seconds for it."""

        connected = threading.Event()

        def on_connection(is_connected: bool, _info: object) -> None:
            if is_connected:
                connected.set()

        LOGGER.info("Connecting to NetworkTables server at %s", server)
        self._nt.initialize(server=server)
        self._table = self._nt.getTable(self.table_name)
        if timeout <= 0:
            return
        self._nt.addConnectionListener(on_connection, immediateNotify=True)
        try:
            if not connected.wait(timeout=timeout) and not self._nt.isConnected():
                raise TelemetryUnavailableError(
                    f"NetworkTables server {server} unreachable after {timeout:.1f}s"
                )
        finally:
            self._nt.removeConnectionListener(on_connection)
        LOGGER.info("Connected to NetworkTables; publishing to %s", self.table_name)

    def publish(self, batch: TelemetryBatch) -> None:
        if self._table is None:
            raise TelemetryUnavailableError("publish() called before connect()")
        try:
            for key, values in batch.as_table().items():
                self._table.putNumberArray(key, values)
        except Exception as exc:
            LOGGER.debug("Telemetry publish dropped: %s", exc)
            return
        self.publish_count += 1

    def close(self) -> None:
        if self._table is None:
            return
        LOGGER.info("Shutting down NetworkTables client")
        self._nt.shutdown()
        self._table = None
