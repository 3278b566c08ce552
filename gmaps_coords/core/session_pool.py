"""Pool of WebDriver-backed session clients shared by lookup workers."""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterator, Mapping, Optional, Sequence, Set, Union

from gmaps_coords.core.config import Settings, get_settings
from gmaps_coords.core.errors import ConfigurationError, PoolExhaustedError, SessionError
from gmaps_coords.core.session_client import SessionClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[int, Settings], Any]


@dataclass(frozen=True)
class SessionHandle:
    slot_index: int
    client: Any


class SessionPool:
    """Hands out exclusive access to a fixed set of session clients.

    A client released after a SessionError gets one reconnection attempt. If
    that fails its slot is retired for the rest of the run.
    """

    def __init__(self, clients: Union[Mapping[int, Any], Sequence[Any]]) -> None:
        if not isinstance(clients, Mapping):
            clients = dict(enumerate(clients))
        self._clients: Dict[int, Any] = dict(clients)
        self._free: Deque[int] = deque(sorted(self._clients))
        self._leased: Set[int] = set()
        self._condition = threading.Condition()
        self.in_use = 0
        self.peak_in_use = 0

    @classmethod
    def connect(
        cls,
        settings: Optional[Settings] = None,
        client_factory: ClientFactory = SessionClient.for_slot,
    ) -> "SessionPool":
        """Open one client per port, skipping slots whose server is unreachable."""
        settings = settings or get_settings()
        clients: Dict[int, Any] = {}
        for slot_index in range(settings.parallelism):
            client = client_factory(slot_index, settings)
            try:
                client.connect()
            except SessionError as exc:
                logger.warning("Slot %d unavailable, continuing without it: %s", slot_index, exc)
                continue
            clients[slot_index] = client

        if not clients:
            last_port = settings.base_port + settings.parallelism - 1
            raise ConfigurationError(
                f"No WebDriver server reachable on {settings.webdriver_host} "
                f"ports {settings.base_port}..{last_port}"
            )
        if len(clients) < settings.parallelism:
            logger.warning("Running with %d of %d sessions", len(clients), settings.parallelism)
        return cls(clients)

    @property
    def size(self) -> int:
        with self._condition:
            return len(self._clients)

    @property
    def exhausted(self) -> bool:
        return self.size == 0

    def acquire(self) -> SessionHandle:
        """Block until a client is free and return exclusive access to it."""
        with self._condition:
            while not self._free:
                if not self._clients:
                    raise PoolExhaustedError("All WebDriver sessions have been retired")
                self._condition.wait()
            slot_index = self._free.popleft()
            self._leased.add(slot_index)
            self.in_use += 1
            self.peak_in_use = max(self.peak_in_use, self.in_use)
            return SessionHandle(slot_index, self._clients[slot_index])

    def release(self, handle: SessionHandle, *, failed: bool = False) -> None:
        with self._condition:
            if handle.slot_index not in self._leased:
                raise ValueError(f"Slot {handle.slot_index} is not currently leased")
            self._leased.remove(handle.slot_index)
            self.in_use -= 1
            if not failed:
                self._free.append(handle.slot_index)
                self._condition.notify()
                return

        # Reconnect outside the lock so other workers keep acquiring.
        try:
            handle.client.reconnect()
        except Exception as exc:  # noqa: BLE001
            self._retire(handle, exc)
            return

        logger.info("Slot %d reconnected", handle.slot_index)
        with self._condition:
            self._free.append(handle.slot_index)
            self._condition.notify()

    def _retire(self, handle: SessionHandle, exc: Exception) -> None:
        with self._condition:
            self._clients.pop(handle.slot_index, None)
            remaining = len(self._clients)
            self._condition.notify_all()
        logger.warning(
            "Retired slot %d after failed reconnect (%s); effective parallelism is now %d",
            handle.slot_index,
            exc,
            remaining,
        )
        try:
            handle.client.close()
        except Exception as close_exc:  # noqa: BLE001
            logger.debug("Ignoring close failure on retired slot %d: %s", handle.slot_index, close_exc)

    @contextmanager
    def lease(self) -> Iterator[Any]:
        """Context manager yielding a client; a SessionError marks it for health check."""
        handle = self.acquire()
        failed = False
        try:
            yield handle.client
        except SessionError:
            failed = True
            raise
        finally:
            self.release(handle, failed=failed)

    def close(self) -> None:
        with self._condition:
            clients = list(self._clients.values())
        for client in clients:
            try:
                client.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to close session client: %s", exc)

    def __enter__(self) -> "SessionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
