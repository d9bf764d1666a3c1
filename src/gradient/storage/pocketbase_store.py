"""
PocketBase document store.

Talks to a PocketBase server over its REST API with httpx. Array mutations map
onto PocketBase's ``field+`` / ``field-`` modifiers, batches onto the
``/api/batch`` endpoint and watches onto the realtime SSE channel, re-listing
the watched query after every realtime event so each emission is a full
snapshot.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from gradient.exceptions import DocumentNotFound, StoreError
from gradient.storage.base import ArrayRemove, ArrayUnion, BaseStore, Batch, BatchOperation, Snapshot, Watch

logger = logging.getLogger(__name__)

# Fields PocketBase adds to every record that are not part of our documents.
SYSTEM_FIELDS = frozenset({"collectionId", "collectionName", "created", "updated", "expand"})

PAGE_SIZE = 500

# Record ids are client-generated uuid4 strings. PocketBase's default id field
# (15 chars of [a-z0-9]) rejects them, so each collection's id field must be
# configured with this pattern and a length of 36.
RECORD_ID_PATTERN = r"^[a-z0-9-]{36}$"


def encode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Translate array mutations into PocketBase modifier keys."""
    body: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, ArrayUnion):
            body[f"{key}+"] = list(value.values)
        elif isinstance(value, ArrayRemove):
            body[f"{key}-"] = list(value.values)
        else:
            body[key] = value
    return body


def decode_record(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if k not in SYSTEM_FIELDS}


def build_filter(filters: Mapping[str, Any] | None) -> str:
    """Build a PocketBase filter expression from equality filters."""
    clauses = []
    for key, value in (filters or {}).items():
        if isinstance(value, bool):
            literal = "true" if value else "false"
        elif isinstance(value, (int, float)):
            literal = str(value)
        else:
            escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
            literal = f'"{escaped}"'
        clauses.append(f"{key} = {literal}")
    return " && ".join(clauses)


class PocketBaseWatch(Watch):
    """
    Realtime subscription to one collection.

    A reader task consumes the SSE stream; every event for the collection
    triggers a fresh listing which is queued as the next snapshot.
    """

    def __init__(self, store: PocketBaseStore, collection: str, filters: Mapping[str, Any] | None):
        self.store = store
        self.collection = collection
        self.filters = dict(filters or {})
        self.closed = False
        self._sequence = 0
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._emit_lock = asyncio.Lock()
        self._reader: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._reader = asyncio.create_task(self._read_stream())
        await self._emit()

    async def _emit(self) -> None:
        # Listings run one at a time so a higher sequence is always a newer read
        async with self._emit_lock:
            self._sequence += 1
            sequence = self._sequence
            documents = await self.store.query(self.collection, self.filters)
            self._queue.put_nowait(Snapshot(sequence=sequence, documents=documents))

    async def _subscribe(self, client_id: str) -> None:
        await self.store.request(
            "POST",
            "/api/realtime",
            json={"clientId": client_id, "subscriptions": [f"{self.collection}/*"]},
        )
        logger.debug("Subscribed to %s realtime events", self.collection)
        # Cover writes that landed between the initial listing and the subscription
        await self._emit()

    async def _read_stream(self) -> None:
        try:
            async with self.store.client.stream("GET", "/api/realtime", timeout=None) as response:
                if response.status_code >= 400:
                    raise StoreError(f"Realtime connect failed: {response.status_code}")

                event, data = "", []
                async for line in response.aiter_lines():
                    if line:
                        name, _, value = line.partition(":")
                        value = value.lstrip(" ")
                        if name == "event":
                            event = value
                        elif name == "data":
                            data.append(value)
                        continue

                    # A blank line dispatches the buffered event
                    payload = "\n".join(data)
                    event_name, data = event, []
                    event = ""
                    if event_name == "PB_CONNECT":
                        await self._subscribe(json.loads(payload)["clientId"])
                    elif event_name.startswith(self.collection):
                        await self._emit()
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, StoreError, ValueError, KeyError) as e:
            if not self.closed:
                logger.error("Realtime stream for %s failed: %s", self.collection, e)
                self._queue.put_nowait(e if isinstance(e, StoreError) else StoreError(str(e)))

    async def __aiter__(self) -> AsyncIterator[Snapshot]:
        while not self.closed:
            item = await self._queue.get()
            if item is None or self.closed:
                return
            if isinstance(item, StoreError):
                raise item
            yield item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.store.detach(self)
        if self._reader:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        self._queue.put_nowait(None)


class PocketBaseBatch(Batch):
    def __init__(self, store: PocketBaseStore):
        super().__init__()
        self.store = store

    def _request_for(self, op: BatchOperation) -> dict[str, Any]:
        base = f"/api/collections/{op.collection}/records"
        if op.kind == "put":
            return {"method": "PUT", "url": base, "body": {"id": op.document_id, **encode_fields(op.fields or {})}}
        if op.kind == "patch":
            return {"method": "PATCH", "url": f"{base}/{op.document_id}", "body": encode_fields(op.fields or {})}
        if op.kind == "delete":
            return {"method": "DELETE", "url": f"{base}/{op.document_id}"}
        raise StoreError(f"Unknown batch operation: {op.kind}")

    async def commit(self) -> None:
        if self.committed:
            raise StoreError("Batch already committed")
        if not self.operations:
            self.committed = True
            return
        requests = [self._request_for(op) for op in self.operations]
        await self.store.request("POST", "/api/batch", json={"requests": requests})
        self.committed = True


class PocketBaseStore(BaseStore):
    """
    Document store backed by a PocketBase server.

    Collections must exist with the document fields as columns; the
    back-reference arrays are multi-relation fields so the ``+``/``-``
    modifiers apply atomically on the server. The id field of every
    collection must accept ``RECORD_ID_PATTERN``.
    """

    def __init__(
        self,
        base_url: str,
        identity: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.identity = identity
        self.password = password
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._watches: list[PocketBaseWatch] = []
        self.token: str | None = None
        self.user_id: str | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise StoreError("PocketBaseStore is not initialized")
        return self._client

    async def initialize(self) -> None:
        """Open the HTTP client and authenticate if credentials were given."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

        if self.identity and self.password:
            data = await self.request(
                "POST",
                "/api/collections/users/auth-with-password",
                json={"identity": self.identity, "password": self.password},
            )
            self.token = data.get("token")
            self.user_id = data.get("record", {}).get("id")
            if not self.token:
                raise StoreError("Missing token in login response")
            self._client.headers["Authorization"] = self.token
            logger.info("Authenticated against %s as %s", self.base_url, self.user_id)

    async def close(self) -> None:
        for watch in list(self._watches):
            await watch.close()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request, mapping transport and HTTP failures to StoreError."""
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise DocumentNotFound(f"{method} {path}: not found")
        if response.status_code >= 400:
            raise StoreError(f"{method} {path} failed: {response.status_code} {response.text}")
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"{method} {path}: invalid JSON response") from e

    def _records(self, collection: str) -> str:
        return f"/api/collections/{collection}/records"

    # Reads
    async def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        try:
            record = await self.request("GET", f"{self._records(collection)}/{document_id}")
        except DocumentNotFound:
            return None
        return decode_record(record)

    async def query(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"perPage": PAGE_SIZE, "page": 1}
        expression = build_filter(filters)
        if expression:
            params["filter"] = expression

        documents: list[dict[str, Any]] = []
        while True:
            data = await self.request("GET", self._records(collection), params=params)
            documents.extend(decode_record(item) for item in data.get("items", []))
            if params["page"] >= data.get("totalPages", 1):
                return documents
            params["page"] += 1

    async def watch(self, collection: str, filters: Mapping[str, Any] | None = None) -> Watch:
        watch = PocketBaseWatch(self, collection, filters)
        self._watches.append(watch)
        await watch.start()
        return watch

    def detach(self, watch: PocketBaseWatch) -> None:
        if watch in self._watches:
            self._watches.remove(watch)

    # Writes
    async def put(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        body = encode_fields(fields)
        try:
            await self.request("PATCH", f"{self._records(collection)}/{document_id}", json=body)
        except DocumentNotFound:
            if not re.match(RECORD_ID_PATTERN, document_id):
                raise StoreError(
                    f"Cannot create {collection}/{document_id}: record ids must match {RECORD_ID_PATTERN}",
                    collection=collection,
                    document_id=document_id,
                ) from None
            await self.request("POST", self._records(collection), json={"id": document_id, **body})

    async def patch(self, collection: str, document_id: str, fields: Mapping[str, Any]) -> None:
        try:
            await self.request("PATCH", f"{self._records(collection)}/{document_id}", json=encode_fields(fields))
        except DocumentNotFound as e:
            raise DocumentNotFound(str(e), collection=collection, document_id=document_id) from e

    async def delete(self, collection: str, document_id: str) -> None:
        try:
            await self.request("DELETE", f"{self._records(collection)}/{document_id}")
        except DocumentNotFound:
            logger.debug("Delete of missing %s/%s ignored", collection, document_id)

    def batch(self) -> Batch:
        return PocketBaseBatch(self)
