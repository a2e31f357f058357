from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class VaultLeases:
    """Per-vault exclusive leases.

    A tick holds its vault's lease from evaluation through execution. A second
    tick for the same vault does not wait for the lease; it sees ``busy`` and
    skips, since the next periodic tick re-reads fresh state anyway.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._held: set[str] = set()

    @staticmethod
    def _key(vault_id: str) -> str:
        return vault_id.strip().lower()

    def is_busy(self, vault_id: str) -> bool:
        with self._lock:
            return self._key(vault_id) in self._held

    def acquire(self, vault_id: str) -> bool:
        key = self._key(vault_id)
        with self._lock:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, vault_id: str) -> None:
        with self._lock:
            self._held.discard(self._key(vault_id))

    @contextmanager
    def try_lease(self, vault_id: str) -> Iterator[bool]:
        acquired = self.acquire(vault_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(vault_id)


# Shared by every controller in the process unless one is passed explicitly.
DEFAULT_LEASES = VaultLeases()
