"""
Producer and collector around the worker pool.

The producer feeds records into a bounded inbound channel in file order. A
closer thread waits for every worker to exit and then closes the outbound
channel. The calling thread acts as the collector: it drains outcomes until
the outbound channel closes and is the only writer of the running counters.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .channels import BoundedChannel, CancellationToken
from .errors import ChannelClosedError, ImportCancelled
from .records import ImportOutcome, ImportRecord
from .workers import WorkerPool

logger = logging.getLogger(__name__)

# Called by the collector after each outcome: (outcome, completed, total)
OutcomeHook = Callable[[ImportOutcome, int, int], None]


@dataclass
class DispatchResult:
    total_records: int
    outcomes: List[ImportOutcome] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    cancel_reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return len(self.outcomes) == self.total_records


class ImportDispatcher:
    def __init__(self, pool: WorkerPool, batch_size: int, on_outcome: Optional[OutcomeHook] = None):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.pool = pool
        self.batch_size = batch_size
        self.on_outcome = on_outcome

    def _produce(self, records: Sequence[ImportRecord], inbound: BoundedChannel, token: CancellationToken) -> None:
        sent = 0
        try:
            for record in records:
                inbound.send(record, token)
                sent += 1
        except ImportCancelled as e:
            logger.warning("Stopped sending records after %d/%d: %s", sent, len(records), e.reason)
        finally:
            inbound.close()
        logger.debug("Producer finished after sending %d records", sent)

    def _close_when_workers_exit(self, outbound: BoundedChannel, errors: List[BaseException]) -> None:
        try:
            self.pool.wait()
        except Exception as e:
            logger.error("Import worker crashed: %s", e, exc_info=True)
            errors.append(e)
        finally:
            outbound.close()

    def dispatch(self, records: Sequence[ImportRecord], token: CancellationToken) -> DispatchResult:
        """
        Run every record through the pool and collect one outcome per processed record.

        Outcomes are returned in completion order. If the token fires before
        all records are processed, the result holds only the outcomes that
        completed and ``cancel_reason`` is set.
        """
        total = len(records)
        result = DispatchResult(total_records=total)
        if total == 0:
            return result

        inbound = BoundedChannel(self.batch_size)
        # One slot per record: a worker never has to wait to hand over a finished outcome
        outbound = BoundedChannel(total)
        worker_errors: List[BaseException] = []

        self.pool.start(inbound, outbound, token)
        producer = threading.Thread(
            target=self._produce,
            args=(records, inbound, token),
            name="import-producer",
            daemon=True,
        )
        closer = threading.Thread(
            target=self._close_when_workers_exit,
            args=(outbound, worker_errors),
            name="import-closer",
            daemon=True,
        )
        producer.start()
        closer.start()

        try:
            while True:
                try:
                    outcome = outbound.receive()
                except ChannelClosedError:
                    break
                result.outcomes.append(outcome)
                if outcome.success:
                    result.success_count += 1
                else:
                    result.failure_count += 1
                if self.on_outcome is not None:
                    self.on_outcome(outcome, len(result.outcomes), total)
        finally:
            closer.join()
            producer.join()
            self.pool.shutdown()

        if worker_errors:
            raise worker_errors[0]

        if not result.completed:
            result.cancel_reason = token.reason or "cancelled"
        return result
