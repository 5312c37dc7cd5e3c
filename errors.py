from typing import Optional


class DiscoveryError(Exception):
    """Base class for every error raised by the discovery engine."""


class MissingParameter(DiscoveryError):
    def __init__(self, name: str):
        super().__init__(f"Query parameter '{name}' is required.")
        self.name = name


class UpstreamError(DiscoveryError):
    """
    An outbound call to an external source failed.
    Carries enough context (source, url, status) to diagnose from logs.
    """
    def __init__(self, source: str, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"[{source}] {message} ({url})")
        self.source = source
        self.url = url
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    pass


class UpstreamTimeout(UpstreamError):
    pass


class CacheCorruption(DiscoveryError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupted cache entry {key}: {reason}")
        self.key = key
