"""Cosmos DB data plane client for Cosmos Tool.

Wraps an httpx.Client with AAD token headers, partition key range fan-out,
continuation-token pagination, request charge accounting, and exception
mapping to the CosmosToolError hierarchy.
"""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from email.utils import formatdate
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import sentry_sdk
import structlog

from cosmos_tool.core.exceptions import (
    ApiError,
    EmptyPartitionRanges,
    NetworkError,
    PermissionDenied,
    TimeoutError,
)
from cosmos_tool.core.models import QueryResult

if TYPE_CHECKING:
    from cosmos_tool.core.config import ResolvedConfig

API_VERSION = "2018-12-31"

_QUERY_HEADERS: dict[str, str] = {
    "Content-Type": "application/query+json",
    "x-ms-documentdb-isquery": "True",
    "x-ms-documentdb-query-enablecrosspartition": "True",
}


def _request_charge(response: httpx.Response) -> float:
    raw = response.headers.get("x-ms-request-charge")
    if raw is None:
        return 0.0
    try:
        return float(raw)
    except ValueError:
        return 0.0


def _segment(name: str) -> str:
    return quote(name, safe="")


def _list_field(
    data: dict[str, Any],
    key: str,
    response: httpx.Response,
    range_id: str | None = None,
) -> list[Any]:
    items = data.get(key, [])
    if not isinstance(items, list):
        raise ApiError(
            response.status_code,
            f"unexpected response body: {key} must be a JSON array",
            range_id=range_id,
        )
    return items


class CosmosClient:
    """Synchronous Cosmos DB data plane client using httpx."""

    def __init__(
        self,
        config: ResolvedConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.endpoint = config.require_endpoint()
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def __enter__(self) -> CosmosClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _http(self) -> httpx.Client:
        # Range workers and pipeline steps share one connection pool.
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.endpoint,
                    timeout=self.config.default_timeout,
                    transport=self._transport,
                )
            return self._client

    def _auth_headers(self) -> dict[str, str]:
        token = self.config.require_token()
        return {
            "Authorization": f"type%3Daad%26ver%3D1.0%26sig%3D{quote(token, safe='')}",
            "x-ms-date": formatdate(usegmt=True),
            "x-ms-version": API_VERSION,
        }

    def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        content: str | None = None,
        range_id: str | None = None,
    ) -> tuple[dict[str, Any], httpx.Response]:
        """Send one request; return the decoded JSON body and the response."""
        log = structlog.get_logger()
        all_headers = self._auth_headers()
        if headers:
            all_headers.update(headers)

        try:
            response = self._http().request(
                method, path, headers=all_headers, content=content
            )
        except httpx.TimeoutException as e:
            log.error("request timeout", path=path, range_id=range_id)
            msg = (
                f"Request to {self.endpoint} timed out after "
                f"{self.config.default_timeout}s"
            )
            raise TimeoutError(msg) from e
        except httpx.TransportError as e:
            log.error("connection failed", path=path, error=str(e))
            msg = f"Connection failed to {self.endpoint}: {e}"
            raise NetworkError(msg) from e

        if response.status_code == httpx.codes.FORBIDDEN:
            raise PermissionDenied(response.text, range_id=range_id)
        if not response.is_success:
            raise ApiError(response.status_code, response.text, range_id=range_id)

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(
                response.status_code,
                f"invalid JSON in response body: {e}",
                range_id=range_id,
            ) from e
        if not isinstance(data, dict):
            raise ApiError(
                response.status_code,
                "unexpected response body: expected a JSON object",
                range_id=range_id,
            )
        return data, response

    def _ids(self, path: str, key: str) -> list[str]:
        data, response = self._send("GET", path)
        items = _list_field(data, key, response)
        if not all(isinstance(item, dict) for item in items):
            raise ApiError(
                response.status_code,
                f"unexpected response body: {key} entries must be JSON objects",
            )
        return [item["id"] for item in items if "id" in item]

    def list_databases(self) -> list[str]:
        return self._ids("/dbs", "Databases")

    def list_containers(self, database: str | None = None) -> list[str]:
        db = database or self.config.require_database()
        return self._ids(f"/dbs/{_segment(db)}/colls", "DocumentCollections")

    def get_partition_key_ranges(
        self, container: str, database: str | None = None
    ) -> list[str]:
        """Partition key range ids of ``container``, in the order the service lists them."""
        db = database or self.config.require_database()
        path = f"/dbs/{_segment(db)}/colls/{_segment(container)}/pkranges"
        return self._ids(path, "PartitionKeyRanges")

    def _query_range(
        self, path: str, body: str, range_id: str
    ) -> tuple[list[Any], float]:
        log = structlog.get_logger()
        documents: list[Any] = []
        charge = 0.0
        continuation: str | None = None
        page = 0

        while True:
            headers = dict(_QUERY_HEADERS)
            headers["x-ms-documentdb-partitionkeyrangeid"] = range_id
            if continuation:
                headers["x-ms-continuation"] = continuation

            data, response = self._send(
                "POST", path, headers=headers, content=body, range_id=range_id
            )
            batch = _list_field(data, "Documents", response, range_id)
            documents.extend(batch)
            charge += _request_charge(response)
            page += 1
            continuation = response.headers.get("x-ms-continuation")
            log.debug(
                "page fetched",
                range_id=range_id,
                page=page,
                documents=len(batch),
                more=bool(continuation),
            )
            if not continuation:
                break

        log.debug(
            "range complete",
            range_id=range_id,
            documents=len(documents),
            charge=charge,
        )
        return documents, charge

    def execute_query(
        self,
        container: str,
        sql: str,
        parameters: list[dict[str, Any]] | None = None,
        *,
        database: str | None = None,
    ) -> QueryResult:
        """Run ``sql`` against every partition key range of ``container``.

        Ranges are re-discovered on each call. Documents are concatenated in
        range discovery order, each range's pages in the order received.
        Any failing request fails the whole query.
        """
        log = structlog.get_logger()
        db = database or self.config.require_database()

        ranges = self.get_partition_key_ranges(container, database=db)
        if not ranges:
            raise EmptyPartitionRanges(container)
        log.debug("partition ranges discovered", container=container, ranges=ranges)

        path = f"/dbs/{_segment(db)}/colls/{_segment(container)}/docs"
        body = json.dumps({"query": sql, "parameters": parameters or []})

        sql_normalized = " ".join(sql.split())
        with sentry_sdk.start_span(
            op="db.query", description=sql_normalized[:100]
        ) as span:
            start_time = time.monotonic()
            workers = max(1, min(self.config.range_workers, len(ranges)))
            if workers == 1:
                outcomes = [self._query_range(path, body, r) for r in ranges]
            else:
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="cosmos-range"
                ) as pool:
                    futures = [
                        pool.submit(self._query_range, path, body, r) for r in ranges
                    ]
                outcomes = [future.result() for future in futures]

            documents: list[Any] = []
            charge = 0.0
            for docs, range_charge in outcomes:
                documents.extend(docs)
                charge += range_charge

            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("document_count", len(documents))
            span.set_data("request_charge", charge)
            span.set_data("partition_ranges", len(ranges))
            log.debug(
                "query complete",
                container=container,
                duration_ms=f"{duration_ms:.1f}",
                documents=len(documents),
                charge=charge,
            )

        return QueryResult(documents=documents, request_charge=charge)

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
