"""Indexing session: prepare the index, fan records out to writers, restore settings."""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional

from esbulk.channel import ChannelAborted, CompletionBarrier, HandoffChannel
from esbulk.es_client import get_client
from esbulk.exceptions import SetupError, TeardownError, WriterError
from esbulk.indices import (
    REFRESH_DISABLED,
    REFRESH_RESTORED,
    REPLICAS_RESTORED,
    REQUEST_ERRORS,
    ZERO_REPLICAS,
    create_index,
    delete_index,
    flush_index,
    put_mapping,
    put_settings,
    resolve_mapping,
)
from esbulk.options import Options
from esbulk.worker import Worker

logger = logging.getLogger(__name__)

# Fixed pause after a purge; deletion is not polled for completion.
PURGE_SETTLE_SECONDS = 5.0


@dataclass
class SessionReport:
    records: int
    requests: int
    failed_docs: int
    elapsed: float
    workers: int

    @property
    def rate(self) -> float:
        return self.records / self.elapsed if self.elapsed > 0 else 0.0


def restore_settings(client: Any, options: Options) -> List[str]:
    """Re-enable refresh, reset replicas and flush. Every step is attempted; returns the errors."""
    errors = []
    steps = [
        ("restore refresh interval", lambda: put_settings(client, options, REFRESH_RESTORED)),
        ("reset replicas", lambda: put_settings(client, options, REPLICAS_RESTORED)),
        ("flush", lambda: flush_index(client, options)),
    ]
    for step, call in steps:
        try:
            call()
        except Exception as e:
            logger.error("%s failed for %s: %s", step, options.index, e)
            errors.append(f"{step}: {e}")
    return errors


@contextmanager
def throughput_settings(client: Any, options: Options) -> Iterator[None]:
    """Disable refresh (and replicas if asked) for the block, restore and flush on every exit."""
    failed = False
    try:
        try:
            put_settings(client, options, REFRESH_DISABLED)
        except REQUEST_ERRORS as e:
            raise SetupError("disable refresh", str(e)) from e
        if options.zero_replica:
            try:
                put_settings(client, options, ZERO_REPLICAS)
            except REQUEST_ERRORS as e:
                raise SetupError("zero replicas", str(e)) from e
        yield
    except BaseException:
        failed = True
        raise
    finally:
        errors = restore_settings(client, options)
        # An earlier error stays the one that propagates.
        if errors and not failed:
            raise TeardownError(errors)


class IndexingSession:
    """Runs one bulk load against options.index.

    Steps run strictly in order: purge (optional), create index, apply
    mapping (optional), disable refresh and replicas, start writers,
    dispatch records, drain, restore settings and flush.
    """

    def __init__(
        self,
        options: Options,
        client: Any = None,
        settle_delay: float = PURGE_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.options = options
        self.client = client
        self.settle_delay = settle_delay
        self.sleep = sleep
        self.workers: List[Worker] = []

    def prepare(self, mapping: Optional[dict] = None) -> None:
        options = self.options
        if options.purge:
            delete_index(self.client, options)
            self.sleep(self.settle_delay)
        create_index(self.client, options)
        if mapping is not None:
            put_mapping(self.client, options, mapping)

    def run(self, records: Iterable[str]) -> SessionReport:
        self.options.validate()
        mapping = resolve_mapping(self.options.mapping) if self.options.mapping else None
        if self.client is None:
            self.client = get_client(self.options)
        self.prepare(mapping)
        with throughput_settings(self.client, self.options):
            report = self._dispatch(records)
        if self.options.verbose:
            logger.info("%d docs in %.3fs at %0.3f docs/s with %d workers",
                        report.records, report.elapsed, report.rate, report.workers)
        return report

    def _start_workers(self, channel: HandoffChannel, barrier: CompletionBarrier) -> None:
        self.workers = []
        for i in range(self.options.num_workers):
            worker = Worker(f"worker-{i}", self.client, self.options, channel, barrier)
            barrier.add()
            thread = threading.Thread(target=worker.run, name=worker.name, daemon=True)
            self.workers.append(worker)
            thread.start()

    def _first_error(self) -> Optional[Worker]:
        for worker in self.workers:
            if worker.error is not None:
                return worker
        return None

    def _dispatch(self, records: Iterable[str]) -> SessionReport:
        channel = HandoffChannel()
        barrier = CompletionBarrier()
        self._start_workers(channel, barrier)

        counter = 0
        start = time.monotonic()
        try:
            for record in records:
                channel.send(record)
                counter += 1
            channel.close()
        except ChannelAborted:
            logger.error("a writer failed, stopped dispatch after %d docs", counter)
        except BaseException:
            # Reader failure: stop the writers before propagating.
            channel.abort()
            barrier.wait()
            raise
        barrier.wait()
        elapsed = time.monotonic() - start

        failed = self._first_error()
        if failed is not None:
            raise WriterError(failed.name, failed.error) from failed.error
        return SessionReport(
            records=counter,
            requests=sum(w.requests for w in self.workers),
            failed_docs=sum(w.failed_docs for w in self.workers),
            elapsed=elapsed,
            workers=len(self.workers),
        )


def run_session(options: Options, records: Iterable[str], client: Any = None) -> SessionReport:
    """Run one indexing session; raises an EsbulkError subclass on failure."""
    return IndexingSession(options, client=client).run(records)
