"""
Export documents from a cluster to a line sink.

Each worker owns one scroll session over its own slice of the match set and
streams pages to the shared sink until the slice is exhausted. Workers only
share the client handle, the sink and the progress counter.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any

from opensearchpy import OpenSearch

from searchpipe.config import Config
from searchpipe.exceptions import ClusterError, ConfigError
from searchpipe.models import ClusterTarget, ExportResult, PageQuery, ScrollCursor, ScrollState
from searchpipe.services.os_client import clear_scroll, continue_scroll, extract_cursor, extract_hits, open_scroll
from searchpipe.services.query import DEFAULT_FILTER, DEFAULT_SIZE, build_page_query
from searchpipe.services.stats import Counter
from searchpipe.services.streams import LineSink
from searchpipe.services.target import index_or_all

logger = logging.getLogger(__name__)

# ranking fields attached by the search, not part of the stored document
TRANSIENT_FIELDS = ("sort", "_score")


def strip_transient(hit: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in hit.items() if key not in TRANSIENT_FIELDS}


class ScrollWorker:
    """
    Pages one slice of the export through a single scroll session.

    INIT -> OPEN on the initial search, OPEN -> PAGE on every response,
    PAGE -> OPEN while hits keep coming and PAGE -> DONE on the first empty
    page, at which point the scroll session is cleared.
    """

    def __init__(
        self,
        client: OpenSearch,
        index: str,
        query: PageQuery,
        sink: LineSink,
        counter: Counter,
        ttl: str = "1m",
        worker_id: int = 0,
    ) -> None:
        self.client = client
        self.index = index
        self.query = query
        self.sink = sink
        self.counter = counter
        self.ttl = ttl
        self.worker_id = worker_id
        self.state = ScrollState.INIT
        self.cursor: ScrollCursor | None = None
        self.emitted = 0

    def run(self) -> int:
        """Drive the worker to completion and return the number of emitted hits."""
        logger.debug("Worker %d opening scroll on %s", self.worker_id, self.index)
        response = open_scroll(self.client, self.index, self.query.to_body(), self.ttl)
        self.state = ScrollState.OPEN

        while self.state is not ScrollState.DONE:
            response = self._handle_page(response)

        return self.emitted

    def _handle_page(self, response: dict[str, Any]) -> dict[str, Any]:
        self.state = ScrollState.PAGE
        hits = extract_hits(response)

        if not hits:
            # the empty page may still carry the newest id of the session
            if "_scroll_id" in response:
                self.cursor = extract_cursor(response, self.ttl)
            self._close()
            return response

        self.cursor = extract_cursor(response, self.ttl)
        for hit in hits:
            self.sink.emit(strip_transient(hit))
        self.emitted += len(hits)

        logger.info("Fetched another batch, have now processed %d", self.counter.increment(len(hits)))

        self.state = ScrollState.OPEN
        return continue_scroll(self.client, self.cursor)

    def _close(self) -> None:
        self.state = ScrollState.DONE
        if self.cursor is not None:
            # every page is already emitted; an open session only expires later
            try:
                clear_scroll(self.client, self.cursor)
            except ClusterError as e:
                logger.warning("Worker %d could not close its scroll: %s", self.worker_id, e)
            self.cursor = None
        logger.debug("Worker %d done after %d documents", self.worker_id, self.emitted)


def run_export(
    client: OpenSearch,
    target: ClusterTarget,
    sink: LineSink,
    *,
    query: str | dict[str, Any] = DEFAULT_FILTER,
    size: int = DEFAULT_SIZE,
    concurrency: int = 1,
    ttl: str | None = None,
    counter: Counter | None = None,
) -> ExportResult:
    """
    Export every document of the target matching ``query`` into ``sink``.

    One worker per slice runs on its own thread. The first worker failure is
    raised as soon as it is observed; workers already running are left to
    finish on their own.

    Returns:
        ExportResult: emitted document count and number of workers
    """
    if concurrency < 1:
        raise ConfigError("concurrency must be at least 1")

    ttl = ttl or Config.SCROLL_TTL
    counter = counter or Counter()
    index = index_or_all(target)

    # every query is built up front so a bad filter fails before any request
    workers = [
        ScrollWorker(
            client,
            index,
            build_page_query(size, query, worker_id, concurrency),
            sink,
            counter,
            ttl=ttl,
            worker_id=worker_id,
        )
        for worker_id in range(concurrency)
    ]

    logger.info("Exporting from %s/%s with %d worker(s)", target.host, index, concurrency)

    executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="scroll")
    futures = [executor.submit(worker.run) for worker in workers]
    try:
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None:
                raise error
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    sink.flush()
    exported = sum(future.result() for future in futures)
    logger.info("Export complete: %d documents", exported)
    return ExportResult(exported=exported, workers=concurrency)
