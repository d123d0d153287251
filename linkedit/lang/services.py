"""Language services that answer linked editing range queries."""
from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
from typing import Any, Dict, Protocol
from urllib.parse import quote, urlparse

from linkedit.core.config import ConfigManager
from linkedit.core.errors import LanguageServiceError, MalformedRangeSet
from linkedit.core.threads import Dispatcher, InlineDispatcher
from linkedit.lang.ranges import LinkedRangeSet, Position

logger = logging.getLogger(__name__)

LINKED_EDITING_METHOD = "textDocument/linkedEditingRange"
CANCEL_METHOD = "$/cancelRequest"


class LanguageQueryService(Protocol):
    def supports_linked_editing_ranges(self) -> bool: ...

    def query(self, uri: str, position: Position) -> concurrent.futures.Future: ...


class JsonRpcClient(Protocol):
    """The part of a language server client the query service relies on.

    ``response_received`` is a signal carrying each decoded response dict.
    """

    response_received: Any

    def send_request(self, method: str, params: dict[str, Any] | None = None) -> int: ...

    def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None: ...


class LSPQueryService:
    """Issues ``textDocument/linkedEditingRange`` requests through a JSON-RPC client.

    Requests are sent from the dispatcher's thread, since the client's
    transport belongs to the UI thread; callers on worker threads only ever
    see the returned future. Cancelling that future sends ``$/cancelRequest``.
    """

    def __init__(self, client: JsonRpcClient, dispatcher: Dispatcher | None = None) -> None:
        self.client = client
        self.dispatcher = dispatcher or InlineDispatcher()
        self._capable = False
        self._pending: Dict[int, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        client.response_received.connect(self._handle_response)

    def configure_capabilities(self, capabilities: dict[str, Any]) -> None:
        """Read the server capabilities returned by ``initialize``."""

        provider = capabilities.get("linkedEditingRangeProvider") if isinstance(capabilities, dict) else None
        self._capable = bool(provider) or isinstance(provider, dict)
        logger.debug("Linked editing capability: %s", self._capable)

    def supports_linked_editing_ranges(self) -> bool:
        return self._capable

    def query(self, uri: str, position: Position) -> concurrent.futures.Future:
        future: concurrent.futures.Future = concurrent.futures.Future()
        params = {"textDocument": {"uri": uri}, "position": position.to_lsp()}
        self.dispatcher.call_soon(lambda: self._send(future, params))
        return future

    def _send(self, future: concurrent.futures.Future, params: dict[str, Any]) -> None:
        if future.cancelled():
            return
        try:
            request_id = self.client.send_request(LINKED_EDITING_METHOD, params)
        except Exception as exc:
            logger.debug("Failed to send linked editing request", exc_info=True)
            _settle(future, exception=LanguageServiceError(str(exc)))
            return
        with self._lock:
            self._pending[request_id] = future
        future.add_done_callback(lambda done, request_id=request_id: self._on_done(request_id, done))

    def _on_done(self, request_id: int, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.pop(request_id, None)
        if future.cancelled():
            self.dispatcher.call_soon(lambda: self._send_cancel(request_id))

    def _send_cancel(self, request_id: int) -> None:
        try:
            self.client.send_notification(CANCEL_METHOD, {"id": request_id})
        except Exception:
            logger.debug("Failed to cancel linked editing request %s", request_id, exc_info=True)

    def _handle_response(self, message: dict[str, Any]) -> None:
        request_id = message.get("id") if isinstance(message, dict) else None
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return
        error = message.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            text = error.get("message", "") if isinstance(error, dict) else str(error)
            _settle(future, exception=LanguageServiceError(text, code))
            return
        try:
            result = LinkedRangeSet.from_lsp(message.get("result"))
        except MalformedRangeSet as exc:
            _settle(future, exception=exc)
            return
        _settle(future, result=result)


def _settle(future: concurrent.futures.Future, result: Any = None, exception: BaseException | None = None) -> None:
    # The caller may cancel from another thread at any moment.
    try:
        if exception is not None:
            future.set_exception(exception)
        else:
            future.set_result(result)
    except concurrent.futures.InvalidStateError:
        pass


class LanguageServiceRegistry:
    """Maps documents to their canonical URI and to the services that can serve them."""

    def __init__(self, config: ConfigManager | None = None) -> None:
        self.config = config
        self._services: dict[str, list[LanguageQueryService]] = {}
        self._language_map = self._build_language_map()

    def _build_language_map(self) -> dict[str, str]:
        """Map file extensions to configured languages."""
        mapping: dict[str, str] = {
            ".html": "html",
            ".htm": "html",
            ".xml": "xml",
        }
        overrides = self.config.get("lsp", {}).get("extension_map", {}) if self.config else {}
        mapping.update({f".{str(k).lstrip('.')}": v for k, v in (overrides or {}).items()})
        return mapping

    def register(self, language: str, service: LanguageQueryService) -> None:
        self._services.setdefault(language, []).append(service)

    def unregister(self, language: str, service: LanguageQueryService) -> None:
        services = self._services.get(language, [])
        if service in services:
            services.remove(service)

    def normalize_path(self, path: Any) -> str | None:
        """Convert different path-like objects into an absolute path string."""
        if path is None:
            return None
        try:
            path_str = os.fspath(path)
        except TypeError:
            path_str = str(path)
        if not path_str:
            return None
        if isinstance(path_str, str) and path_str.startswith("file:"):
            parsed = urlparse(path_str)
            if parsed.scheme == "file" and parsed.path:
                path_str = parsed.path
        return os.path.abspath(path_str)

    def language_for_path(self, path: Any) -> str | None:
        normalized = self.normalize_path(path)
        if not normalized:
            return None
        _, ext = os.path.splitext(normalized)
        return self._language_map.get(ext.lower())

    def uri_for_path(self, path: Any) -> str | None:
        normalized = self.normalize_path(path)
        if not normalized:
            return None
        return "file://" + quote(normalized, safe="/")

    def services_for(self, path: Any) -> list[LanguageQueryService]:
        """Services for the document's language that advertise linked editing."""

        language = self.language_for_path(path)
        if not language:
            return []
        capable: list[LanguageQueryService] = []
        for service in self._services.get(language, []):
            try:
                if service.supports_linked_editing_ranges():
                    capable.append(service)
            except Exception:
                logger.debug("Capability check failed for %s service", language, exc_info=True)
        return capable

