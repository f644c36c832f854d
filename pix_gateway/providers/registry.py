"""
Provider registry.

Built once at startup (see ``pix_gateway.bootstrap``) and handed to whoever
needs to resolve a bank code. Registration takes a lock; lookups read a
dict that is only ever replaced whole, so they need none.
"""

import logging
import threading
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from pix_gateway.providers.base import PixProvider

logger = logging.getLogger("pix_gateway.registry")


class ProviderRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._providers: dict[str, PixProvider] = {}
        self._priorities: dict[str, int] = {}

    def register(self, provider: PixProvider, priority: int = 0) -> None:
        """
        Add an adapter under its ``code``.

        Re-registering a code replaces the adapter but keeps its position
        in registration order.
        """
        code = provider.code
        with self._lock:
            providers = dict(self._providers)
            priorities = dict(self._priorities)
            replaced = code in providers
            providers[code] = provider
            priorities[code] = priority
            self._providers = providers
            self._priorities = priorities
        logger.info("%s provider %s (priority=%d)", "Replaced" if replaced else "Registered", code, priority)

    def get(self, code: str) -> Optional[PixProvider]:
        return self._providers.get(code)

    def get_all(self) -> Mapping[str, PixProvider]:
        """Read-only view in registration order."""
        return MappingProxyType(self._providers)

    def priority(self, code: str) -> int:
        return self._priorities.get(code, 0)

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, code: object) -> bool:
        return code in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)
