import json
from typing import Any

from pydantic import ValidationError

from searchpipe.exceptions import ConfigError, InvalidFilter
from searchpipe.models import PageQuery, SliceSpec

DEFAULT_FILTER = '{"match_all":{}}'
DEFAULT_SIZE = 100


def parse_filter(raw: str | dict[str, Any]) -> dict[str, Any]:
    """Decode a user filter, which must be a JSON object."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidFilter(str(e)) from e
    if not isinstance(raw, dict):
        raise InvalidFilter(f"expected a JSON object, got {type(raw).__name__}")
    return raw


def build_page_query(
    size: int = DEFAULT_SIZE,
    filter: str | dict[str, Any] = DEFAULT_FILTER,
    worker_id: int = 0,
    worker_count: int = 1,
) -> PageQuery:
    """
    Build the search body for one export worker.

    A slice is only attached when more than one worker shares the scroll, so
    each worker pages a disjoint partition of the same match set.
    """
    if worker_count < 1:
        raise ConfigError("worker count must be at least 1")
    parsed = parse_filter(filter)
    try:
        page_slice = SliceSpec(id=worker_id, max=worker_count) if worker_count > 1 else None
        return PageQuery(filter=parsed, size=size, slice=page_slice)
    except ValidationError as e:
        raise ConfigError(f"Invalid page query: {e}") from e
