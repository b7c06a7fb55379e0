"""
Key-value store protocol.

Defines the interface every storage backend implements so the
entitlement engine and history store never depend on a concrete backend.
Exactly one implementation is chosen at startup (see service.build_store).
"""
from typing import Optional, Protocol


class KeyValueStore(Protocol):
    """
    Protocol for string key-value stores.

    Implementations must:
    - return None for missing or expired keys
    - honour `ex` (expiry in seconds) when provided
    - raise StoreUnavailableError when the backend cannot be reached
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...
