"""
Import documents read line by line into a cluster.

Lines are parsed into bulk operations, grouped into fixed-size batches and
written by a bounded pool of bulk requests. Once every batch has been
written the cluster is refreshed so the documents become searchable.

Failure policy:
- a batch request that fails at transport or HTTP level aborts the run
- a single item rejected inside an accepted batch is logged and counted
- an input line that cannot be parsed is dropped and counted
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from itertools import islice
from typing import Any

from opensearchpy import OpenSearch
from pydantic import ValidationError

from searchpipe.exceptions import ConfigError, MalformedRecordError, ProtocolError
from searchpipe.models import Batch, BatchState, BulkOperation, ClusterTarget, ImportResult, ItemFailure, RecordEnvelope
from searchpipe.services.os_client import bulk_operation, refresh_index
from searchpipe.services.query import DEFAULT_SIZE
from searchpipe.services.stats import Counter
from searchpipe.services.streams import iter_lines
from searchpipe.services.target import index_or_all

logger = logging.getLogger(__name__)


def transform_line(line: str | bytes, fixed_index: str | None = None) -> BulkOperation:
    """
    Turn one exported document line into an index operation.

    ``_id`` and ``_source`` are required. The write index is ``fixed_index``
    when given, otherwise the document's own ``_index``.

    Raises:
        MalformedRecordError: if the line is not a valid document envelope
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRecordError(f"record is not valid UTF-8: {e}") from e

    try:
        envelope = RecordEnvelope.model_validate_json(line)
    except ValidationError as e:
        raise MalformedRecordError(f"unable to parse record: {e.errors()[0]['msg']}") from e

    index = fixed_index or envelope.index
    if not index:
        raise MalformedRecordError(f"record {envelope.id} has no _index and no target index was given")

    return BulkOperation(index=index, id=envelope.id, source=envelope.source)


def transform_records(
    lines: Iterable[str | bytes],
    fixed_index: str | None,
    dropped: Counter,
) -> Iterator[BulkOperation]:
    """Lazily map lines to operations, dropping and counting malformed records."""
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            yield transform_line(line, fixed_index)
        except MalformedRecordError as e:
            dropped.increment(1)
            logger.debug("Dropping line %d: %s", number, e)


def iter_batches(operations: Iterable[BulkOperation], size: int) -> Iterator[Batch]:
    """Group operations into batches of ``size``; the last one may be shorter."""
    if size < 1:
        raise ConfigError("batch size must be at least 1")
    iterator = iter(operations)
    number = 0
    while chunk := list(islice(iterator, size)):
        yield Batch(number=number, operations=chunk)
        number += 1


def collect_item_failures(response: dict[str, Any]) -> list[ItemFailure]:
    """Items of a bulk response that were not written to every shard."""
    if not response.get("errors"):
        return []

    items = response.get("items")
    if not isinstance(items, list):
        raise ProtocolError("bulk response reports errors but has no items")

    failures: list[ItemFailure] = []
    for item in items:
        if not isinstance(item, dict):
            raise ProtocolError(f"bulk response item is of wrong type: {item!r}")

        # each item is keyed by its action name ("index", "create", ...)
        result = next(iter(item.values()), None)
        if not isinstance(result, dict):
            result = {}
        shards = result.get("_shards")
        failed = shards.get("failed") if isinstance(shards, dict) else None

        # a missing shard summary counts as a failure
        if "error" in result or not isinstance(failed, int) or failed > 0:
            failures.append(
                ItemFailure(
                    id=result.get("_id"),
                    index=result.get("_index"),
                    status=result.get("status"),
                    error=result.get("error"),
                    item=item,
                )
            )
    return failures


def dispatch_batch(client: OpenSearch, batch: Batch, counter: Counter) -> tuple[int, int]:
    """
    Write one batch with a single bulk request.

    Returns:
        (number of operations sent, number of item failures)
    """
    response = bulk_operation(client, batch.operations)
    batch.state = BatchState.DONE

    logger.info("Indexed another batch, have now processed %d", counter.increment(len(batch)))

    failures = collect_item_failures(response)
    for failure in failures:
        logger.error("err: %s", failure.item)
    return len(batch), len(failures)


def _harvest(futures: set[Future], result: ImportResult) -> None:
    for future in futures:
        sent, failed = future.result()
        result.indexed += sent
        result.failed_items += failed


class _FirstFailure:
    """Keeps the first error raised by any import thread and wakes the caller."""

    def __init__(self) -> None:
        self.error: BaseException | None = None
        self.wake = threading.Event()
        self._lock = threading.Lock()

    def record(self, error: BaseException) -> None:
        with self._lock:
            if self.error is None:
                self.error = error
        self.wake.set()

    def watch(self, future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            self.record(future.exception())

    @property
    def failed(self) -> bool:
        return self.error is not None


def _read_and_dispatch(
    client: OpenSearch,
    operations: Iterable[BulkOperation],
    executor: ThreadPoolExecutor,
    *,
    size: int,
    concurrency: int,
    counter: Counter,
    result: ImportResult,
    failure: _FirstFailure,
) -> None:
    """Producer loop: batch the input and keep at most ``concurrency`` batches in flight."""
    in_flight: set[Future] = set()
    try:
        for batch in iter_batches(operations, size):
            if failure.failed:
                return
            done = {future for future in in_flight if future.done()}
            if len(in_flight) - len(done) >= concurrency:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            _harvest(done, result)
            in_flight -= done

            batch.state = BatchState.IN_FLIGHT
            future = executor.submit(dispatch_batch, client, batch, counter)
            future.add_done_callback(failure.watch)
            in_flight.add(future)
            result.batches += 1

        done, _ = wait(in_flight, return_when=FIRST_EXCEPTION)
        _harvest(done, result)
    except Exception as e:  # noqa: BLE001
        # handed over to the calling thread, which raises it
        failure.record(e)
    finally:
        failure.wake.set()


def run_import(
    client: OpenSearch,
    target: ClusterTarget,
    stream: Iterable[bytes],
    *,
    size: int = DEFAULT_SIZE,
    concurrency: int = 1,
    counter: Counter | None = None,
) -> ImportResult:
    """
    Import every document line of ``stream`` into the target cluster.

    The stream is read on its own thread. At most ``concurrency`` bulk
    requests are in flight at once and reading pauses until a slot frees up.
    The first failed batch is raised as soon as it fails, even while the
    reader is still blocked on input, and nothing further is dispatched.

    Returns:
        ImportResult: counts of indexed, dropped and failed documents
    """
    if concurrency < 1:
        raise ConfigError("concurrency must be at least 1")
    if size < 1:
        raise ConfigError("batch size must be at least 1")

    counter = counter or Counter()
    dropped = Counter()
    result = ImportResult()
    failure = _FirstFailure()

    operations = transform_records(iter_lines(stream), target.index, dropped)

    logger.info("Importing into %s/%s", target.host, target.index or "<per-record index>")

    executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="bulk")
    # daemon, so a reader stuck on input never keeps a failed run alive
    reader = threading.Thread(
        target=_read_and_dispatch,
        args=(client, operations, executor),
        kwargs={
            "size": size,
            "concurrency": concurrency,
            "counter": counter,
            "result": result,
            "failure": failure,
        },
        name="import-reader",
        daemon=True,
    )
    reader.start()
    try:
        failure.wake.wait()
        if failure.error is not None:
            raise failure.error
        reader.join()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    refresh_index(client, index_or_all(target))

    result.dropped = dropped.value
    if result.dropped:
        logger.warning("Dropped %d malformed record(s)", result.dropped)
    return result
