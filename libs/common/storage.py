"""Object storage signing.

Resources only store ``(bucket, path)`` pairs; download links are minted on
demand by a ``StorageSigner``. ``CachedStorageSigner`` reuses a signed URL
until shortly before it expires, and is the only place that talks to the
cache, so tests can pass a fake signer and a ``MemoryTTLCache``.
"""

from typing import Optional, Protocol

import httpx
from libs.common.cache import CacheBackend
from libs.common.config import Settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_TIMEOUT = 10.0


class StorageSigningError(Exception):
    """Raised when the storage backend refuses to sign a path."""


class StorageSigner(Protocol):
    async def sign(self, bucket: str, path: str, expires_in: int) -> str: ...


class SupabaseStorageSigner:
    """Signs download URLs through the Supabase Storage REST API."""

    def __init__(self, base_url: str, service_key: str, timeout: float = _DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout

    async def sign(self, bucket: str, path: str, expires_in: int) -> str:
        url = f"{self.base_url}/storage/v1/object/sign/{bucket}/{path.lstrip('/')}"
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                url, json={"expiresIn": expires_in}, headers=headers
            )
        if response.status_code >= 400:
            logger.warning(
                "Storage signing failed for %s/%s: %s",
                bucket,
                path,
                response.status_code,
            )
            raise StorageSigningError(f"sign failed with {response.status_code}")

        data = response.json()
        signed = data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise StorageSigningError("sign response missing signedURL")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"


class CachedStorageSigner:
    """Wraps a signer with a TTL cache shorter than the URL lifetime."""

    def __init__(
        self,
        signer: StorageSigner,
        cache: CacheBackend,
        url_ttl_seconds: int,
        cache_ttl_seconds: int,
    ):
        self.signer = signer
        self.cache = cache
        self.url_ttl_seconds = url_ttl_seconds
        # A cached URL must never outlive the signature itself.
        self.cache_ttl_seconds = min(cache_ttl_seconds, max(url_ttl_seconds - 30, 0))

    @staticmethod
    def cache_key(bucket: str, path: str) -> str:
        return f"signed:{bucket}:{path}"

    async def sign(self, bucket: str, path: str, expires_in: Optional[int] = None) -> str:
        key = self.cache_key(bucket, path)
        cached = await self.cache.get(key)
        if cached:
            return cached

        url = await self.signer.sign(bucket, path, expires_in or self.url_ttl_seconds)
        await self.cache.set(key, url, self.cache_ttl_seconds)
        return url

    async def invalidate(self, bucket: str, path: str) -> None:
        await self.cache.delete(self.cache_key(bucket, path))


def build_signer(settings: Settings, cache: CacheBackend) -> CachedStorageSigner:
    return CachedStorageSigner(
        SupabaseStorageSigner(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY),
        cache,
        url_ttl_seconds=settings.STORAGE_SIGNED_URL_TTL_SECONDS,
        cache_ttl_seconds=settings.SIGNED_URL_CACHE_TTL_SECONDS,
    )
