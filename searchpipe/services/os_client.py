import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from searchpipe.exceptions import ClusterError, ProtocolError
from searchpipe.models import BulkOperation, ScrollCursor


@contextmanager
def _cluster_call(action: str) -> Iterator[None]:
    try:
        yield
    except OpenSearchException as e:
        raise ClusterError(action, e) from e


def open_scroll(client: OpenSearch, index: str, body: dict[str, Any], ttl: str) -> dict[str, Any]:
    with _cluster_call("initialize search"):
        return client.search(index=index, body=body, scroll=ttl)


def continue_scroll(client: OpenSearch, cursor: ScrollCursor) -> dict[str, Any]:
    with _cluster_call("continue search"):
        return client.scroll(body={"scroll": cursor.ttl, "scroll_id": cursor.scroll_id})


def clear_scroll(client: OpenSearch, cursor: ScrollCursor) -> None:
    with _cluster_call("close search"):
        client.clear_scroll(body={"scroll_id": [cursor.scroll_id]})


def bulk_operation(client: OpenSearch, operations: list[BulkOperation]) -> dict[str, Any]:
    lines: list[dict[str, Any]] = []
    for operation in operations:
        lines.extend(operation.to_ndjson_lines())
    ndjson = "\n".join(json.dumps(line) for line in lines) + "\n"
    with _cluster_call("import batch"):
        return client.bulk(body=ndjson)


def refresh_index(client: OpenSearch, index: str) -> None:
    with _cluster_call(f"refresh {index}"):
        client.indices.refresh(index=index)


def extract_hits(response: dict[str, Any]) -> list[dict[str, Any]]:
    try:
        hits = response["hits"]["hits"]
    except (KeyError, TypeError) as e:
        raise ProtocolError("unable to locate hits in search response") from e
    if not isinstance(hits, list):
        raise ProtocolError("hits in search response is not a list")
    for hit in hits:
        if not isinstance(hit, dict):
            raise ProtocolError(f"search hit is not an object: {hit!r}")
    return hits


def extract_cursor(response: dict[str, Any], ttl: str) -> ScrollCursor:
    scroll_id = response.get("_scroll_id")
    if scroll_id is None:
        raise ProtocolError("unable to locate _scroll_id in search response")
    if not isinstance(scroll_id, str):
        raise ProtocolError("_scroll_id is of wrong type")
    return ScrollCursor(scroll_id=scroll_id, ttl=ttl)
