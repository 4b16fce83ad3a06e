# blebridge/runtime/watch_registry.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from blebridge.interfaces.device_broker import WatchHandle
from blebridge.model.reading import normalize_address

SubscribeFn = Callable[[], WatchHandle]

# Marks an address whose subscription is in progress outside the lock.
_PENDING = object()


class DeviceWatchRegistry:
    """
    Owns the active watch handles, keyed by normalized device address.

    try_register() reserves the address under the lock before calling the
    (possibly slow) subscribe function, so concurrent registrations for the
    same address from enumeration and discovery never both subscribe.
    After release_all() the registry is closed and refuses new watches.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._watches: Dict[str, object] = {}
        self._closed = False

    # ---------------- Public API ----------------
    def try_register(self, address: str, subscribe_fn: SubscribeFn) -> bool:
        """
        Subscribe and retain a handle iff the address is not watched yet.

        Returns True when a new subscription was created. Exceptions from
        subscribe_fn propagate and leave the address unregistered.
        """
        key = normalize_address(address)

        with self._lock:
            if self._closed:
                self._log.warning("WATCH_REFUSED_CLOSED address=%s", key)
                return False
            if key in self._watches:
                self._log.warning("WATCH_ALREADY_REGISTERED address=%s", key)
                return False
            self._watches[key] = _PENDING

        try:
            handle = subscribe_fn()
        except Exception:
            with self._lock:
                if self._watches.get(key) is _PENDING:
                    del self._watches[key]
            raise

        with self._lock:
            closed_meanwhile = self._closed
            if not closed_meanwhile:
                self._watches[key] = handle

        if closed_meanwhile:
            # release_all() ran while we were subscribing; nobody else owns this handle.
            self._close_handle(key, handle)
            return False

        self._log.info("WATCH_REGISTERED address=%s", key)
        return True

    def release(self, address: str) -> bool:
        """Deregister one device. Returns False if it was not watched."""
        key = normalize_address(address)
        with self._lock:
            handle = self._watches.get(key)
            if handle is None or handle is _PENDING:
                return False
            del self._watches[key]

        self._close_handle(key, handle)
        return True

    def release_all(self) -> int:
        """Unsubscribe every handle and close the registry (idempotent)."""
        with self._lock:
            self._closed = True
            taken = [(k, h) for k, h in self._watches.items() if h is not _PENDING]
            self._watches.clear()

        for key, handle in taken:
            self._close_handle(key, handle)

        if taken:
            self._log.info("WATCHES_RELEASED count=%d", len(taken))
        return len(taken)

    # ---------------- State ----------------
    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def addresses(self) -> List[str]:
        with self._lock:
            return sorted(k for k, h in self._watches.items() if h is not _PENDING)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        try:
            key = normalize_address(address)
        except ValueError:
            return False
        with self._lock:
            handle = self._watches.get(key)
        return handle is not None and handle is not _PENDING

    def __len__(self) -> int:
        return len(self.addresses())

    # ---------------- Internal ----------------
    def _close_handle(self, key: str, handle: object) -> None:
        try:
            handle.close()  # type: ignore[attr-defined]
        except Exception:
            self._log.exception("WATCH_RELEASE_FAILED address=%s", key)
