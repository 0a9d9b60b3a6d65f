"""Identity provider adapters and the session cache."""

from __future__ import annotations

import hashlib
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable

import httpx
import structlog

from sitecrew.auth.models import CallerIdentity
from sitecrew.core.config import Settings

logger = structlog.get_logger()


class IdentityProvider(ABC):
    """External authentication oracle."""

    @abstractmethod
    def authenticate(self, credential: str) -> CallerIdentity | None:
        """Return the caller behind a bearer credential, or None if it is not valid."""
        pass


class HTTPIdentityProvider(IdentityProvider):
    """
    Resolves bearer tokens against the provider's ``/user`` endpoint.

    Any non-200 answer or transport failure yields None; the caller is then
    treated as unauthenticated.
    """

    def __init__(
        self,
        user_endpoint: str,
        api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.user_endpoint = user_endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.client = client or httpx.Client(timeout=timeout)
        self.logger = logger.bind(component="identity_provider")

    def authenticate(self, credential: str) -> CallerIdentity | None:
        headers = {"Authorization": f"Bearer {credential}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            response = self.client.get(self.user_endpoint, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            self.logger.error("Identity provider request failed", error=str(e))
            return None

        if response.status_code != 200:
            self.logger.info("Credential rejected", status=response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            self.logger.warning("Identity provider returned a non-JSON body")
            return None
        if not isinstance(data, dict):
            self.logger.warning(
                "Identity provider returned an unexpected payload", payload_type=type(data).__name__
            )
            return None

        user_id = data.get("id")
        email = data.get("email")
        if not user_id or not email:
            self.logger.warning("Identity provider returned incomplete user")
            return None

        metadata = data.get("user_metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        return CallerIdentity(
            user_id=user_id,
            email=email,
            full_name=metadata.get("full_name") or metadata.get("name") or "",
            metadata=metadata,
        )


class StaticIdentityProvider(IdentityProvider):
    """Fixed credential-to-identity map. Used by tests and local development."""

    def __init__(self, identities: dict[str, CallerIdentity] | None = None) -> None:
        self.identities = dict(identities or {})

    def register(self, credential: str, identity: CallerIdentity) -> None:
        self.identities[credential] = identity

    def authenticate(self, credential: str) -> CallerIdentity | None:
        return self.identities.get(credential)


# ============================================================================
# Session cache
# ============================================================================

class SessionCache(ABC):
    """
    Key/value cache with per-entry TTL.

    Multi-instance deployments need an implementation backed by a shared
    store; the in-memory one is per process.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemorySessionCache(SessionCache):
    """Thread-safe LRU dictionary with expiry."""

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (self.clock() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CachedIdentityProvider(IdentityProvider):
    """
    Caches successful authentications.

    Keys are SHA-256 digests of the credential, so raw bearer tokens never
    sit in the cache. Only identities are cached, never permissions.
    """

    def __init__(self, provider: IdentityProvider, cache: SessionCache, ttl: int = 300) -> None:
        self.provider = provider
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def cache_key(credential: str) -> str:
        return "identity:" + hashlib.sha256(credential.encode()).hexdigest()

    def authenticate(self, credential: str) -> CallerIdentity | None:
        key = self.cache_key(credential)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        identity = self.provider.authenticate(credential)
        if identity is not None:
            self.cache.set(key, identity, self.ttl)
        return identity

    def invalidate(self, credential: str) -> None:
        self.cache.delete(self.cache_key(credential))


def build_identity_provider(settings: Settings) -> IdentityProvider:
    """Create the configured provider, wrapped in the session cache when enabled."""
    provider: IdentityProvider = HTTPIdentityProvider(
        user_endpoint=settings.identity.user_endpoint,
        api_key=settings.identity.api_key,
        timeout=settings.identity.timeout_seconds,
    )
    if settings.cache.enabled:
        provider = CachedIdentityProvider(
            provider,
            InMemorySessionCache(max_entries=settings.cache.max_entries),
            ttl=settings.cache.ttl_seconds,
        )
    return provider
