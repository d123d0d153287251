"""Queries language services for the linked ranges around the caret."""
from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any

from linkedit.core.cache import RangeCache
from linkedit.core.errors import LinkedEditingError, NoCapableService, PositionConversionError
from linkedit.core.threads import BackgroundWorkers
from linkedit.lang.document import TextDocument
from linkedit.lang.ranges import Position
from linkedit.lang.services import LanguageQueryService, LanguageServiceRegistry

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 2.0


def _done_future() -> concurrent.futures.Future:
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_result(None)
    return future


def _cancel_query(query: concurrent.futures.Future) -> None:
    """Cancel ``query`` and wake any thread waiting on it in ``as_completed``."""

    if not query.cancel():
        return
    try:
        query.set_running_or_notify_cancel()
    except RuntimeError:
        logger.debug("Linked editing query already reported as cancelled")


class RangeProvider:
    """Keeps the cache entry of a document in step with the caret.

    ``refresh`` marks the entry unknown straight away and then queries every
    capable service on the worker pool. Only the newest refresh of a
    document can write its results back.
    """

    def __init__(
        self,
        cache: RangeCache,
        registry: LanguageServiceRegistry,
        workers: BackgroundWorkers,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.workers = workers
        self.request_timeout = request_timeout
        self._queries: dict[str, list[concurrent.futures.Future]] = {}
        self._lock = threading.Lock()

    def refresh(self, key: str, document: TextDocument, offset: int) -> concurrent.futures.Future:
        try:
            position = document.position_at(offset)
        except PositionConversionError:
            logger.warning("Cannot refresh linked ranges for %s at offset %s", key, offset, exc_info=True)
            return _done_future()
        uri = self.registry.uri_for_path(key)
        if not uri:
            return _done_future()

        generation = self.cache.begin_refresh(key)
        if generation is None:
            logger.debug("Ignoring refresh for closed document %s", key)
            return _done_future()
        self.cancel(key)

        try:
            services = self._capable_services(key)
        except NoCapableService:
            logger.debug("No linked editing service for %s", key)
            self.cache.resolve(key, generation, None)
            return _done_future()

        future = self.workers.submit(key, self._collect, key, generation, uri, position, services)
        if future is None:
            self.cache.settle_unknown(key, generation)
            return _done_future()
        return future

    def _capable_services(self, key: str) -> list[LanguageQueryService]:
        services = self.registry.services_for(key)
        if not services:
            raise NoCapableService(key)
        return services

    def _collect(
        self,
        key: str,
        generation: int,
        uri: str,
        position: Position,
        services: list[LanguageQueryService],
    ) -> None:
        if self.cache.get(key).generation != generation:
            return
        queries: list[concurrent.futures.Future] = []
        for service in services:
            try:
                queries.append(service.query(uri, position))
            except Exception:
                logger.warning("Linked editing query failed to start for %s", uri, exc_info=True)
        with self._lock:
            current = self.cache.get(key).generation == generation
            if current:
                self._queries[key] = queries
        if not current:
            # Superseded while the queries were being sent.
            for query in queries:
                _cancel_query(query)

        try:
            for query in concurrent.futures.as_completed(queries, timeout=self.request_timeout):
                result = self._result_of(uri, query)
                if result:
                    self.cache.resolve(key, generation, result)
                elif not query.cancelled() and query.exception() is None:
                    logger.debug("Linked editing query for %s returned no ranges", uri)
        except concurrent.futures.TimeoutError:
            logger.info("Linked editing query for %s timed out after %.1fs", uri, self.request_timeout)
            for query in queries:
                _cancel_query(query)
        finally:
            with self._lock:
                if self._queries.get(key) is queries:
                    self._queries.pop(key, None)
            self.cache.settle_unknown(key, generation)

    def _result_of(self, uri: str, query: concurrent.futures.Future) -> Any:
        try:
            return query.result()
        except concurrent.futures.CancelledError:
            logger.debug("Linked editing query for %s cancelled", uri)
        except LinkedEditingError as exc:
            logger.warning("Linked editing query for %s failed: %s", uri, exc)
        except Exception:
            logger.exception("Linked editing query for %s raised", uri)
        return None

    def cancel(self, key: str) -> None:
        """Cancel the pending request for ``key``, if any."""

        self.workers.cancel(key)
        with self._lock:
            queries = self._queries.pop(key, [])
        for query in queries:
            _cancel_query(query)

    def shutdown(self) -> None:
        with self._lock:
            keys = list(self._queries)
        for key in keys:
            self.cancel(key)
