"""
Fixed-size worker pool for bulk user creation.

Each worker pulls one record at a time from the shared inbound channel,
creates the user through the injected creator and pushes exactly one outcome
to the outbound channel. Workers stop when the inbound channel is closed and
drained, or as soon as the run's token fires while they are waiting.
"""
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from app.domain.users.service import CreateUserInput

from .channels import BoundedChannel, CancellationToken
from .errors import ChannelClosedError, ImportCancelled, InvalidRoleError
from .records import ImportOutcome, ImportRecord, UserRole

logger = logging.getLogger(__name__)

# Must be safe to call from several threads at once. Returns the new user's id
# and raises on failure; the exception text is reported verbatim.
UserCreator = Callable[[CreateUserInput], str]


def resolve_role(value: str) -> UserRole:
    normalized = (value or "").strip().lower()
    for role in UserRole:
        if role.value == normalized:
            return role
    raise InvalidRoleError(
        f"invalid role '{value}'. Must be '{UserRole.MANAGER.value}' or '{UserRole.MEMBER.value}'"
    )


def process_record(record: ImportRecord, create_user: UserCreator, worker_id: int = 0) -> ImportOutcome:
    """Validate the role and create one user. Never raises for record-level problems."""
    logger.debug(
        "Worker %d processing line %d (username=%s, email=%s)",
        worker_id,
        record.line_number,
        record.username,
        record.email,
    )

    try:
        role = resolve_role(record.role)
    except InvalidRoleError as e:
        return ImportOutcome(record=record, success=False, error=str(e))

    data = CreateUserInput(
        username=record.username,
        email=record.email,
        password=record.password,
        role=role,
    )

    try:
        user_id = create_user(data)
    except Exception as e:
        logger.error(
            "Worker %d failed to create user at line %d (email=%s): %s",
            worker_id,
            record.line_number,
            record.email,
            e,
        )
        return ImportOutcome(record=record, success=False, error=str(e))

    logger.debug("Worker %d created user %s from line %d", worker_id, user_id, record.line_number)
    return ImportOutcome(record=record, success=True, user_id=str(user_id))


def run_worker(
    worker_id: int,
    inbound: BoundedChannel,
    outbound: BoundedChannel,
    token: CancellationToken,
    create_user: UserCreator,
) -> int:
    """Worker loop. Returns the number of outcomes this worker delivered."""
    logger.debug("Worker %d started", worker_id)
    delivered = 0

    while True:
        try:
            record = inbound.receive(token)
        except ChannelClosedError:
            logger.debug("Worker %d finished - channel closed (%d processed)", worker_id, delivered)
            return delivered
        except ImportCancelled as e:
            logger.warning("Worker %d cancelled while waiting for records: %s", worker_id, e.reason)
            return delivered

        outcome = process_record(record, create_user, worker_id)

        try:
            outbound.send(outcome, token)
        except ImportCancelled as e:
            # Outcome for this record is lost; only reachable if outbound is smaller than the record count
            logger.warning(
                "Worker %d cancelled while sending result for line %d: %s",
                worker_id,
                record.line_number,
                e.reason,
            )
            return delivered
        delivered += 1


class WorkerPool:
    """A fixed number of symmetric workers sharing one inbound and one outbound channel."""

    def __init__(self, worker_count: int, create_user: UserCreator):
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self.worker_count = worker_count
        self.create_user = create_user
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: List[Future] = []

    def start(self, inbound: BoundedChannel, outbound: BoundedChannel, token: CancellationToken) -> None:
        if self._executor is not None:
            raise RuntimeError("worker pool already started")
        self._executor = ThreadPoolExecutor(
            max_workers=self.worker_count,
            thread_name_prefix="import-worker",
        )
        self._futures = [
            self._executor.submit(run_worker, worker_id, inbound, outbound, token, self.create_user)
            for worker_id in range(1, self.worker_count + 1)
        ]
        logger.info("Started %d import workers", self.worker_count)

    def wait(self) -> int:
        """
        Block until every worker has exited and return the number of outcomes delivered.

        Re-raises the first unexpected worker crash.
        """
        if self._executor is None:
            return 0
        started = time.time()
        wait(self._futures)
        delivered = 0
        for future in self._futures:
            delivered += future.result()
        logger.debug("All %d workers exited after %.3fs", self.worker_count, time.time() - started)
        return delivered

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
