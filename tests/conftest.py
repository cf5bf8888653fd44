from __future__ import annotations

import json
import threading
import time
from typing import Any

import pytest
from opensearchpy.exceptions import ConnectionError as OSConnectionError


def make_hit(index: str, doc_id: str, source: dict[str, Any], position: int = 0) -> dict[str, Any]:
    return {"_index": index, "_id": doc_id, "_score": None, "_source": source, "sort": [position]}


class FakeIndices:
    def __init__(self, client: FakeClient) -> None:
        self._client = client

    def refresh(self, index: str) -> dict[str, Any]:
        if self._client.refresh_error is not None:
            raise self._client.refresh_error
        self._client.refreshed.append(index)
        return {"_shards": {"total": 1, "successful": 1, "failed": 0}}


class FakeClient:
    """
    In-memory stand-in for ``opensearchpy.OpenSearch``.

    Documents live in ``self.data[index][doc_id]``. Sliced searches assign the
    n-th document of the match set to slice ``n % max``.
    """

    def __init__(self, data: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self.data: dict[str, dict[str, dict[str, Any]]] = data or {}
        self.indices = FakeIndices(self)
        self.refreshed: list[str] = []
        self.searches: list[dict[str, Any]] = []
        self.cleared: list[str] = []
        self.bulk_bodies: list[str] = []
        self.failing_ids: set[str] = set()
        self.bulk_error: Exception | None = None
        self.scroll_error: Exception | None = None
        self.refresh_error: Exception | None = None
        self.clear_error: Exception | None = None
        self.omit_scroll_id = False
        self.bulk_delay = 0.0
        self.active_bulks = 0
        self.max_active_bulks = 0
        self._sessions: dict[str, list[dict[str, Any]]] = {}
        self._page_sizes: dict[str, int] = {}
        self._lock = threading.Lock()
        self._next_session = 0

    def _matching_hits(self, index: str, body: dict[str, Any]) -> list[dict[str, Any]]:
        indices = sorted(self.data) if index == "_all" else [index]
        hits = [
            make_hit(name, doc_id, source, position)
            for name in indices
            for position, (doc_id, source) in enumerate(sorted(self.data.get(name, {}).items()))
        ]
        page_slice = body.get("slice")
        if page_slice:
            hits = [hit for n, hit in enumerate(hits) if n % page_slice["max"] == page_slice["id"]]
        return hits

    def _page(self, scroll_id: str) -> dict[str, Any]:
        with self._lock:
            remaining = self._sessions[scroll_id]
            size = self._page_sizes[scroll_id]
            page, self._sessions[scroll_id] = remaining[:size], remaining[size:]
        response: dict[str, Any] = {"hits": {"hits": page}}
        if not self.omit_scroll_id:
            response["_scroll_id"] = scroll_id
        return response

    def search(self, index: str, body: dict[str, Any], scroll: str) -> dict[str, Any]:
        with self._lock:
            self.searches.append({"index": index, "body": body, "scroll": scroll})
            scroll_id = f"scroll-{self._next_session}"
            self._next_session += 1
            self._sessions[scroll_id] = self._matching_hits(index, body)
            self._page_sizes[scroll_id] = body["size"]
        return self._page(scroll_id)

    def scroll(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.scroll_error is not None:
            raise self.scroll_error
        return self._page(body["scroll_id"])

    def clear_scroll(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.clear_error is not None:
            raise self.clear_error
        with self._lock:
            self.cleared.extend(body["scroll_id"])
        return {"succeeded": True}

    def bulk(self, body: str) -> dict[str, Any]:
        with self._lock:
            self.active_bulks += 1
            self.max_active_bulks = max(self.max_active_bulks, self.active_bulks)
            self.bulk_bodies.append(body)
        try:
            if self.bulk_delay:
                time.sleep(self.bulk_delay)
            if self.bulk_error is not None:
                raise self.bulk_error
            return self._apply_bulk(body)
        finally:
            with self._lock:
                self.active_bulks -= 1

    def _apply_bulk(self, body: str) -> dict[str, Any]:
        lines = [json.loads(line) for line in body.splitlines() if line]
        items: list[dict[str, Any]] = []
        errors = False
        for action, source in zip(lines[::2], lines[1::2]):
            meta = action["index"]
            if meta["_id"] in self.failing_ids:
                errors = True
                items.append(
                    {
                        "index": {
                            "_index": meta["_index"],
                            "_id": meta["_id"],
                            "status": 400,
                            "error": {"type": "mapper_parsing_exception", "reason": "failed to parse"},
                        }
                    }
                )
                continue
            with self._lock:
                self.data.setdefault(meta["_index"], {})[meta["_id"]] = source
            items.append(
                {
                    "index": {
                        "_index": meta["_index"],
                        "_id": meta["_id"],
                        "status": 201,
                        "_shards": {"total": 1, "successful": 1, "failed": 0},
                    }
                }
            )
        return {"took": 1, "errors": errors, "items": items}

    def bulk_operation_counts(self) -> list[int]:
        return [len([line for line in body.splitlines() if line]) // 2 for body in self.bulk_bodies]


@pytest.fixture
def corpus() -> dict[str, dict[str, dict[str, Any]]]:
    return {"books": {f"{n:03d}": {"title": f"Book {n}", "n": n} for n in range(25)}}


@pytest.fixture
def client(corpus: dict[str, dict[str, dict[str, Any]]]) -> FakeClient:
    return FakeClient(corpus)


@pytest.fixture
def empty_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def connection_error() -> OSConnectionError:
    return OSConnectionError("N/A", "connection refused", Exception("connection refused"))
