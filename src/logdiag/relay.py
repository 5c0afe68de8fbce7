from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from enum import Enum
from typing import Callable

from lsprotocol.types import (
    EXIT,
    INITIALIZE,
    SHUTDOWN,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_SAVE,
    TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
    TextDocumentSyncKind,
)
from pydantic import ValidationError

from logdiag import __version__
from logdiag.exceptions import CleanEof, TransportError
from logdiag.framing import MessageChannel, read_message
from logdiag.json_types import JSONObject, JSONValue
from logdiag.schema import (
    DocumentNotificationDTO,
    InitializeParamsDTO,
    PublishDiagnosticsParamsDTO,
)
from logdiag.store import DiagnosticStore
from logdiag.uri_resolver import uri_to_path

logger = logging.getLogger(__name__)

SERVER_NAME = "logdiag"
DOCUMENT_METHODS = frozenset(
    {TEXT_DOCUMENT_DID_OPEN, TEXT_DOCUMENT_DID_CHANGE, TEXT_DOCUMENT_DID_SAVE}
)
_UNSET = object()


class RelayState(Enum):
    RELAYING = "relaying"
    TERMINATED = "terminated"


def terminate_process(code: int = 0) -> None:
    logging.shutdown()
    sys.stdout.flush()
    os._exit(code)


def _params(message: JSONObject) -> JSONObject:
    params = message.get("params")
    return params if isinstance(params, dict) else {}


def _method(message: JSONObject) -> str | None:
    method = message.get("method")
    return method if isinstance(method, str) else None


def initialize_result(request_id: JSONValue) -> JSONObject:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {
            "capabilities": {"textDocumentSync": int(TextDocumentSyncKind.Full)},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        },
    }


def publish_notification(
    uri: str, diagnostics: list[JSONObject], version: object = _UNSET
) -> JSONObject:
    params: JSONObject = {"uri": uri}
    if version is not _UNSET:
        params["version"] = version
    params["diagnostics"] = diagnostics
    return {
        "jsonrpc": "2.0",
        "method": TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
        "params": params,
    }


class ProxyRelay:
    """Forwards traffic between the editor and the backend analyzer.

    With no backend channel the relay answers ``initialize`` and ``shutdown``
    itself and drops everything else, so the editor only ever sees the
    diagnostics mined from the logs.
    """

    def __init__(
        self,
        store: DiagnosticStore,
        client: MessageChannel,
        backend: MessageChannel | None = None,
        *,
        verbosity: int = 0,
        exit_fn: Callable[[int], None] = terminate_process,
    ) -> None:
        self.store = store
        self.client = client
        self.backend = backend
        self.verbosity = verbosity
        self._exit_fn = exit_fn
        self.on_initialized: Callable[[], None] | None = None
        self.client_state = RelayState.RELAYING
        self.backend_state = RelayState.RELAYING

    async def publish_merged(self, uri: str, *, version: object = _UNSET) -> None:
        merged = await self.store.merged_for(uri)
        logger.info(
            "publishing %s: %d diagnostics (%d from logs)",
            uri,
            len(merged),
            await self.store.log_derived_count(uri),
        )
        await self.client.send(publish_notification(uri, merged, version))

    async def client_to_backend(self, reader: asyncio.StreamReader) -> None:
        try:
            while await self._relay_one(reader, "client", self._on_client_message):
                pass
        finally:
            self.client_state = RelayState.TERMINATED

    async def backend_to_client(self, reader: asyncio.StreamReader) -> None:
        try:
            while await self._relay_one(reader, "backend", self._on_backend_message):
                pass
        finally:
            self.backend_state = RelayState.TERMINATED

    async def _relay_one(self, reader, peer: str, handle) -> bool:
        try:
            message = await read_message(reader)
        except CleanEof:
            logger.info("%s closed the stream", peer)
            return False
        except (TransportError, OSError) as exc:
            logger.error("read from %s failed: %s", peer, exc)
            return False
        self._trace(peer, message)
        try:
            return await handle(message)
        except OSError as exc:
            logger.error("relaying message from %s failed: %s", peer, exc)
            return False

    def _trace(self, peer: str, message: JSONObject) -> None:
        logger.info("receive from %s: %s", peer, _method(message) or "<response>")
        if self.verbosity > 1:
            logger.debug("json: %s", json.dumps(message, ensure_ascii=False))

    async def _on_client_message(self, message: JSONObject) -> bool:
        method = _method(message)
        if method == INITIALIZE:
            await self._capture_root(_params(message))
            if self.backend is None:
                await self.client.send(initialize_result(message.get("id")))
            else:
                await self.backend.send(message)
            if self.on_initialized is not None:
                self.on_initialized()
            return True
        elif method in DOCUMENT_METHODS:
            await self._capture_document(_params(message))
        elif method == SHUTDOWN and self.backend is None:
            await self.client.send(
                {"jsonrpc": "2.0", "id": message.get("id"), "result": None}
            )
            return True
        elif method == EXIT:
            if self.backend is not None:
                await self.backend.send(message)
            logger.info("exit requested; terminating")
            self._exit_fn(0)
            return False
        await self._forward_to_backend(message)
        return True

    async def _forward_to_backend(self, message: JSONObject) -> None:
        if self.backend is None:
            logger.debug("no backend attached; dropping %s", _method(message))
            return
        await self.backend.send(message)

    async def _capture_root(self, params: JSONObject) -> None:
        try:
            init = InitializeParamsDTO.model_validate(params)
        except ValidationError as exc:
            logger.warning("unexpected initialize params: %s", exc)
            return
        if init.rootUri:
            root = uri_to_path(init.rootUri)
        elif init.rootPath:
            root = uri_to_path(init.rootPath)
        else:
            logger.info("initialize carried no workspace root")
            return
        if await self.store.set_workspace_root(root):
            logger.info("workspace root: %s", root)

    async def _capture_document(self, params: JSONObject) -> None:
        try:
            notification = DocumentNotificationDTO.model_validate(params)
        except ValidationError:
            logger.debug("document notification without textDocument.uri")
            return
        await self.store.set_current_uri(notification.textDocument.uri)

    async def _on_backend_message(self, message: JSONObject) -> bool:
        if _method(message) == TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS:
            params = _params(message)
            try:
                publish = PublishDiagnosticsParamsDTO.model_validate(params)
            except ValidationError as exc:
                logger.warning("forwarding unparsable publishDiagnostics: %s", exc)
            else:
                await self.store.set_native(publish.uri, publish.diagnostics)
                version = params["version"] if "version" in params else _UNSET
                await self.publish_merged(publish.uri, version=version)
                return True
        await self.client.send(message)
        return True
