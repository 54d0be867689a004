"""Writer that batches records from the handoff channel into bulk requests."""
import logging
from typing import Any, List, Optional

from elasticsearch.exceptions import ApiError, TransportError

from esbulk.bulk import BulkRequest, describe_failure, inspect_bulk_response
from esbulk.channel import CompletionBarrier, HandoffChannel
from esbulk.es_client import response_status
from esbulk.exceptions import BulkRequestError, DocumentErrors
from esbulk.options import Options

logger = logging.getLogger(__name__)

MAX_LOGGED_FAILURES = 5


class Worker:
    """Owns one open batch; flushes it when full and once more when the channel closes."""

    def __init__(self, name: str, client: Any, options: Options, channel: HandoffChannel, barrier: CompletionBarrier):
        self.name = name
        self.client = client
        self.options = options
        self.channel = channel
        self.barrier = barrier
        self.batch: List[str] = []
        self.requests = 0
        self.docs = 0
        self.failed_docs = 0
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        """Thread target. Always releases the barrier; records the first error and aborts the channel."""
        try:
            for record in self.channel:
                self.batch.append(record)
                if len(self.batch) >= self.options.batch_size:
                    self.flush()
            if self.channel.aborted:
                if self.batch:
                    logger.warning("%s: session aborted, dropping %d buffered docs", self.name, len(self.batch))
                return
            if self.batch:
                self.flush()
        except Exception as e:
            self.error = e
            logger.error("%s: %s", self.name, e)
            self.channel.abort()
        except BaseException as e:
            self.error = e
            self.channel.abort()
            raise
        finally:
            self.barrier.done()

    def flush(self) -> None:
        """Send the open batch as one bulk request and start a new batch."""
        records, self.batch = self.batch, []
        request = BulkRequest.from_records(records, self.options)
        try:
            resp = self.client.bulk(operations=request.lines)
        except ApiError as e:
            raise BulkRequestError(self.name, request.size, f"rejected with status {e.meta.status}: {e}") from e
        except TransportError as e:
            raise BulkRequestError(self.name, request.size, str(e)) from e
        self.requests += 1
        self.docs += request.size

        body = getattr(resp, "body", resp)
        outcome = inspect_bulk_response(body)
        if outcome.failures:
            self.failed_docs += len(outcome.failures)
            self._log_failures(outcome.failures)
            if self.options.fail_on_doc_errors:
                raise DocumentErrors(self.name, outcome.failures)
        if self.options.verbose:
            logger.info("%s: indexed %d docs (status %s, took %sms, failed %d)",
                        self.name, request.size, response_status(resp), outcome.took, len(outcome.failures))

    def _log_failures(self, failures: List[dict]) -> None:
        level = logging.WARNING if self.options.verbose else logging.DEBUG
        for failure in failures[:MAX_LOGGED_FAILURES]:
            logger.log(level, "%s: %s", self.name, describe_failure(failure))
        if len(failures) > MAX_LOGGED_FAILURES:
            logger.log(level, "%s: ... and %d more document errors", self.name, len(failures) - MAX_LOGGED_FAILURES)
