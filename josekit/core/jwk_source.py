"""JWK sources: local and remote (URL) JWK sets.

RemoteJWKSet fetches a JWK set over HTTP, caches it as an immutable
snapshot and serves lookups from the snapshot. Refreshes are
single-flight: however many threads find the cache empty, expired or
missing a key at the same time, one of them performs the fetch and the
others wait for and share its result.
"""

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable

import requests

from josekit.config import get_settings
from josekit.core.errors import (
    FailoverKeySourceError,
    KeySourceError,
    KeySourceNotFoundError,
    KeySourceTimeoutError,
    ParseError,
    RemoteKeySourceError,
)
from josekit.core.jwk import JWK, JWKSelector, JWKSet
from josekit.observability import get_logger

logger = get_logger(__name__)

USER_AGENT = "josekit"


@dataclass(frozen=True)
class Resource:
    """Retrieved resource content and its Content-Type, if any."""

    content: str
    content_type: str | None = None


class ResourceRetriever(ABC):
    @abstractmethod
    def retrieve(self, url: str) -> Resource:
        """Retrieve the resource at the URL.

        Raises:
            RemoteKeySourceError: If the resource couldn't be retrieved
        """


class DefaultResourceRetriever(ResourceRetriever):
    """HTTP(S) retriever with connect / read timeouts and a size limit.

    Args:
        connect_timeout: Connect timeout in seconds
        read_timeout: Read timeout in seconds
        size_limit: Maximum response size in bytes, 0 for no limit
        session: requests session to use, a new one by default
    """

    def __init__(
        self,
        connect_timeout: float | None = None,
        read_timeout: float | None = None,
        size_limit: int | None = None,
        session: requests.Session | None = None,
    ):
        settings = get_settings()
        self.connect_timeout = settings.http_connect_timeout if connect_timeout is None else connect_timeout
        self.read_timeout = settings.http_read_timeout if read_timeout is None else read_timeout
        self.size_limit = settings.http_size_limit if size_limit is None else size_limit

        self.session = session or requests.Session()
        self.headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

    def retrieve(self, url: str) -> Resource:
        try:
            response = self.session.get(
                url,
                headers=self.headers,
                timeout=(self.connect_timeout, self.read_timeout),
                stream=True,
            )
        except requests.Timeout as e:
            raise KeySourceTimeoutError(f"Timeout retrieving {url}: {e}") from e
        except requests.RequestException as e:
            raise RemoteKeySourceError(f"Couldn't retrieve {url}: {e}", retriable=True) from e

        try:
            if response.status_code != 200:
                raise KeySourceNotFoundError(f"HTTP {response.status_code}: {response.reason} ({url})")
            content = self._read(response, url)
        finally:
            response.close()

        return Resource(
            content=content.decode(response.encoding or "utf-8", errors="replace"),
            content_type=response.headers.get("Content-Type"),
        )

    def _read(self, response: requests.Response, url: str) -> bytes:
        chunks = []
        size = 0
        try:
            for chunk in response.iter_content(chunk_size=4096):
                size += len(chunk)
                if self.size_limit and size > self.size_limit:
                    raise RemoteKeySourceError(
                        f"Exceeded configured input limit of {self.size_limit} bytes ({url})",
                        retriable=False,
                    )
                chunks.append(chunk)
        except requests.Timeout as e:
            raise KeySourceTimeoutError(f"Timeout reading {url}: {e}") from e
        except requests.RequestException as e:
            raise RemoteKeySourceError(f"Couldn't read {url}: {e}", retriable=True) from e
        return b"".join(chunks)


class JWKSource(ABC):
    @abstractmethod
    def get(self, selector: JWKSelector, context: Any = None) -> list[JWK]:
        """Return the JWKs matching the selector, in source order.

        Raises:
            KeySourceError: If the keys couldn't be obtained
        """


class ImmutableJWKSet(JWKSource):
    """A fixed, local JWK set."""

    def __init__(self, jwk_set: JWKSet):
        self.jwk_set = jwk_set

    def get(self, selector: JWKSelector, context: Any = None) -> list[JWK]:
        return selector.select(self.jwk_set)


@dataclass(frozen=True)
class CachedJWKSet:
    """Immutable cache snapshot; a refresh replaces it as a whole."""

    jwk_set: JWKSet
    fetched_at: float
    generation: int

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at >= ttl


@dataclass(frozen=True)
class JWKSetHealth:
    healthy: bool
    timestamp: float
    error: Exception | None = None


class RemoteJWKSet(JWKSource):
    """JWK set retrieved from a URL, cached and refreshed on demand.

    The cache is refreshed when it is empty, when it is older than
    ``cache_ttl`` and, if ``refresh_on_miss`` is on, when a lookup finds
    no matching key. Refreshes on miss are limited to one per
    ``min_refresh_interval``.

    A ``failover`` source is only consulted when retrieving the remote
    set fails. Its keys are returned but never cached.

    Args:
        url: JWK set URL
        retriever: Resource retriever, a DefaultResourceRetriever by default
        failover: Optional JWK source to use when retrieval fails
        cache_ttl: Lifetime of a cached set in seconds
        refresh_on_miss: Refresh when no cached key matches a lookup
        min_refresh_interval: Minimum seconds between refreshes on miss
        clock: Monotonic time source
    """

    def __init__(
        self,
        url: str,
        retriever: ResourceRetriever | None = None,
        failover: JWKSource | None = None,
        cache_ttl: float | None = None,
        refresh_on_miss: bool | None = None,
        min_refresh_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.url = url
        self.retriever = retriever or DefaultResourceRetriever()
        self.failover = failover
        self.cache_ttl = settings.jwk_set_cache_ttl if cache_ttl is None else cache_ttl
        self.refresh_on_miss = settings.jwk_set_refresh_on_miss if refresh_on_miss is None else refresh_on_miss
        self.min_refresh_interval = (
            settings.jwk_set_min_refresh_interval if min_refresh_interval is None else min_refresh_interval
        )
        self.clock = clock

        self._lock = threading.Lock()
        self._cache: CachedJWKSet | None = None
        self._in_flight: Future | None = None

    @property
    def cached_jwk_set(self) -> CachedJWKSet | None:
        """The current cache snapshot, None before the first fetch."""
        return self._cache

    def get(self, selector: JWKSelector, context: Any = None) -> list[JWK]:
        try:
            return self._get_remote(selector)
        except KeySourceError as e:
            if self.failover is None:
                raise
            return self._get_failover(selector, context, e)

    def _get_remote(self, selector: JWKSelector) -> list[JWK]:
        snapshot = self._cache
        if snapshot is None or snapshot.is_expired(self.clock(), self.cache_ttl):
            snapshot = self._refresh(stale=snapshot)

        matches = selector.select(snapshot.jwk_set)
        if matches or not self.refresh_on_miss:
            return matches

        # No match, the keys may have been rotated
        if self.clock() - snapshot.fetched_at < self.min_refresh_interval:
            logger.debug("jwk_set_refresh_suppressed", url=self.url, generation=snapshot.generation)
            return matches

        snapshot = self._refresh(stale=snapshot)
        return selector.select(snapshot.jwk_set)

    def _get_failover(self, selector: JWKSelector, context: Any, primary_error: KeySourceError) -> list[JWK]:
        logger.warning("jwk_set_failover", url=self.url, error=str(primary_error))
        try:
            return self.failover.get(selector, context)
        except Exception as e:
            raise FailoverKeySourceError(
                f"Couldn't retrieve remote JWK set: {self.url}; Failover JWK source retrieval failed with: {e}",
                primary_error=primary_error,
                failover_error=e,
            ) from e

    def _refresh(self, stale: CachedJWKSet | None) -> CachedJWKSet:
        """Replace the ``stale`` snapshot, fetching at most once per generation.

        A caller whose snapshot has already been replaced gets the newer
        one without fetching. Callers arriving while a fetch is in flight
        wait for it and share its result, or its exception.
        """
        with self._lock:
            current = self._cache
            if current is not stale:
                return current
            future = self._in_flight
            leader = future is None
            if leader:
                future = Future()
                self._in_flight = future

        if not leader:
            return future.result()

        try:
            jwk_set = self._fetch()
        except BaseException as e:
            with self._lock:
                self._in_flight = None
            future.set_exception(e)
            raise

        generation = stale.generation + 1 if stale is not None else 1
        snapshot = CachedJWKSet(jwk_set=jwk_set, fetched_at=self.clock(), generation=generation)
        with self._lock:
            self._cache = snapshot
            self._in_flight = None
        future.set_result(snapshot)
        return snapshot

    def _fetch(self) -> JWKSet:
        logger.info("jwk_set_fetch_started", url=self.url)
        started = time.perf_counter()
        jwk_set = self._retrieve_and_parse()
        logger.info(
            "jwk_set_fetch_finished",
            url=self.url,
            keys=len(jwk_set),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return jwk_set

    def _retrieve_and_parse(self) -> JWKSet:
        try:
            resource = self.retriever.retrieve(self.url)
        except KeySourceError:
            raise
        except OSError as e:
            raise RemoteKeySourceError(f"Couldn't retrieve remote JWK set: {e}", retriable=True) from e

        try:
            jwk_set = JWKSet.parse(resource.content)
        except ParseError as e:
            raise RemoteKeySourceError(f"Couldn't parse remote JWK set: {e}", retriable=False) from e

        if not len(jwk_set):
            raise KeySourceNotFoundError(f"No JWKs found at {self.url}")
        return jwk_set

    def health(self) -> JWKSetHealth:
        """Probe the URL without touching the cache."""
        try:
            self._retrieve_and_parse()
        except KeySourceError as e:
            return JWKSetHealth(healthy=False, timestamp=time.time(), error=e)
        return JWKSetHealth(healthy=True, timestamp=time.time())
