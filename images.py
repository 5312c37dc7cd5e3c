import base64
import binascii
import hashlib
from typing import Tuple
from loguru import logger
from cache import IMAGES, CacheStore, cache_key
from errors import CacheCorruption, UpstreamError
from fetcher import RateLimitedFetcher

JPEG_SIGNATURE = b"\xff\xd8"
JPEG_CONTENT_TYPE = "image/jpeg"
IMAGE_CACHE_TTL = 60 * 60 * 24 * 7


def image_cache_key(url: str) -> str:
    return cache_key(IMAGES, hashlib.sha256(url.encode()).hexdigest())


def encode_image(payload: bytes) -> str:
    # Base64 keeps binary intact in a text-only (decode_responses) cache.
    return base64.b64encode(payload).decode("ascii")


def is_valid_image(payload: bytes, signature: bytes = JPEG_SIGNATURE) -> bool:
    return len(payload) > len(signature) and payload[:len(signature)] == signature


def decode_image(key: str, encoded: str, signature: bytes = JPEG_SIGNATURE) -> bytes:
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CacheCorruption(key, f"undecodable payload ({e})") from e
    if not is_valid_image(payload, signature):
        raise CacheCorruption(key, f"bad signature {payload[:2].hex() or 'empty'}")
    return payload


class ImageCache:
    """
    Cover thumbnail proxy cache.

    A corrupted entry is dropped, re-fetched once from the origin and
    overwritten before anything is served; callers never see it.
    """

    def __init__(
        self,
        cache: CacheStore,
        fetcher: RateLimitedFetcher,
        ttl_seconds: int = IMAGE_CACHE_TTL,
        signature: bytes = JPEG_SIGNATURE,
        content_type: str = JPEG_CONTENT_TYPE,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds
        self.signature = signature
        self.content_type = content_type

    async def _read_cached(self, key: str) -> bytes:
        encoded = await self.cache.get(key)
        if encoded is None: return b""
        try:
            payload = decode_image(key, encoded, self.signature)
        except CacheCorruption as e:
            logger.warning(f"[PROXY] {e}, re-fetching")
            await self.cache.delete(key)
            return b""
        logger.debug(f"[PROXY] Cache hit: {key} ({len(payload)} bytes)")
        return payload

    async def _refresh(self, url: str, key: str) -> bytes:
        logger.info(f"[PROXY] Cache miss: fetching {url}")
        payload = await self.fetcher.fetch(url)
        if not is_valid_image(payload, self.signature):
            raise UpstreamError(self.fetcher.source, url, "origin did not return a valid image")
        await self.cache.set(key, encode_image(payload), self.ttl_seconds)
        return payload

    async def get_image(self, url: str) -> Tuple[bytes, str]:
        key = image_cache_key(url)
        payload = await self._read_cached(key) or await self._refresh(url, key)
        return payload, self.content_type
