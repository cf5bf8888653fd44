from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator

DOC_SORT = ["_doc"]


class ScrollState(StrEnum):
    """Lifecycle of one export worker's scroll session."""
    INIT = "init"
    OPEN = "open"
    PAGE = "page"
    DONE = "done"


class BatchState(StrEnum):
    """Lifecycle of one import batch."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"


class ClusterTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str
    index: str | None = None


class SliceSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    max: int = Field(ge=1)

    @model_validator(mode="after")
    def validate_id_below_max(self) -> "SliceSpec":
        if self.id >= self.max:
            raise ValueError(f"slice id {self.id} must be lower than max {self.max}")
        return self


class PageQuery(BaseModel):
    """Search body for one worker: filtered, doc-ordered and optionally sliced."""
    model_config = ConfigDict(frozen=True)

    filter: dict[str, Any]
    size: PositiveInt = 100
    sort: list[str] = Field(default_factory=lambda: list(DOC_SORT))
    slice: SliceSpec | None = None

    @model_validator(mode="after")
    def validate_doc_sort(self) -> "PageQuery":
        # scroll paging is only stable in per-shard document order
        if self.sort != DOC_SORT:
            raise ValueError("sort must be ['_doc']")
        return self

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "query": self.filter,
            "size": self.size,
            "sort": list(self.sort),
        }
        if self.slice is not None:
            body["slice"] = self.slice.model_dump()
        return body


class ScrollCursor(BaseModel):
    model_config = ConfigDict(frozen=True)

    scroll_id: str
    ttl: str


class RecordEnvelope(BaseModel):
    """One exported document as read back from an input line."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    index: str | None = Field(default=None, alias="_index")
    source: dict[str, Any] = Field(alias="_source")


class BulkOperation(BaseModel):
    index: str
    id: str
    source: dict[str, Any]

    def to_ndjson_lines(self) -> list[dict[str, Any]]:
        """Action line followed by the document body."""
        return [{"index": {"_index": self.index, "_id": self.id}}, self.source]


class Batch(BaseModel):
    number: int
    operations: list[BulkOperation] = Field(default_factory=list)
    state: BatchState = BatchState.PENDING

    def __len__(self) -> int:
        return len(self.operations)


class ItemFailure(BaseModel):
    """A single document rejected inside an otherwise accepted bulk request."""
    id: str | None = None
    index: str | None = None
    status: int | None = None
    error: Any = None
    item: dict[str, Any]


class ExportResult(BaseModel):
    exported: int = 0
    workers: int = 0


class ImportResult(BaseModel):
    indexed: int = 0
    batches: int = 0
    dropped: int = 0
    failed_items: int = 0
