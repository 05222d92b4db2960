"""
Shared machinery for the staking and governance engines.

Every state-changing call runs as one atomic operation:
1. checks and effects are applied to a deep copy of the engine state,
2. the copy is committed,
3. interactions with external collaborators (token transfers) run,
4. buffered events are appended to the event log.
A failure at any step restores the previous state and drops the buffered
events. When an interaction fails, the compensating actions of the
interactions that already went through run in reverse order, so a rejected
call leaves no observable trace.
"""
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import logging

from pydantic import BaseModel

from ...protocol.types.common import EventType, InvalidParameter, Paused, ProtocolError, Unauthorized
from ..storage.db import StorageDB
from ..observability import metrics
from .clock import SystemClock
from .events import EventLog

logger = logging.getLogger(__name__)


class Operation:
    """Working copy of the state plus everything the call wants to do after commit."""

    def __init__(self, state: BaseModel, now: int):
        self.state = state
        self.now = now
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.interactions: List[Tuple[Callable[[], None], Optional[Callable[[], None]]]] = []

    def emit(self, name: EventType, **data: Any) -> None:
        self.events.append((name.value, data))

    def interact(self, call: Callable[[], None], undo: Optional[Callable[[], None]] = None) -> None:
        """
        Register an external call to run after commit.

        Args:
            call: The interaction itself
            undo: Compensating action, run if a later interaction fails
        """
        self.interactions.append((call, undo))


class Engine:
    """Base class: owner checks, pause flag, atomic operations and persistence."""

    source = "engine"
    STATE_KEY = "engine"

    def __init__(self, state: BaseModel, events: Optional[EventLog] = None, clock: Callable[[], int] = None):
        self.state = state
        self.events = events if events is not None else EventLog()
        self.clock = clock or SystemClock()

    def now(self) -> int:
        return int(self.clock())

    @property
    def owner(self) -> str:
        return self.state.owner

    @property
    def paused(self) -> bool:
        return self.state.paused

    @contextmanager
    def _operation(self, name: str) -> Iterator[Operation]:
        previous = self.state
        op = Operation(previous.model_copy(deep=True), self.now())
        completed: List[Optional[Callable[[], None]]] = []
        try:
            yield op
            self.state = op.state
            for call, undo in op.interactions:
                call()
                completed.append(undo)
        except Exception as e:
            self._compensate(name, completed)
            self.state = previous
            if isinstance(e, ProtocolError):
                metrics.record_rejection(self.source, e.code)
                logger.debug(f"{self.source}.{name} rejected: {e}")
            raise

        for event_name, data in op.events:
            self.events.append(self.source, event_name, op.now, **data)
        metrics.record_operation(self.source, name)

    def _compensate(self, name: str, completed: List[Optional[Callable[[], None]]]) -> None:
        """Reverts interactions that succeeded before a later one failed, newest first."""
        for undo in reversed(completed):
            if undo is None:
                continue
            try:
                undo()
            except Exception as e:
                logger.error(f"{self.source}.{name}: compensating action failed: {e}", exc_info=True)

    # ─── Guards ────────────────────────────────────────────────────

    @staticmethod
    def _require_owner(state: BaseModel, sender: str) -> None:
        if sender != state.owner:
            raise Unauthorized("caller is not the owner")

    @staticmethod
    def _require_not_paused(state: BaseModel) -> None:
        if state.paused:
            raise Paused("paused")

    # ─── Administration ───────────────────────────────────────────

    def pause(self, sender: str) -> None:
        with self._operation("pause") as op:
            self._require_owner(op.state, sender)
            self._require_not_paused(op.state)
            op.state.paused = True
            op.emit(EventType.PAUSED, account=sender)
        logger.info(f"{self.source} paused by {sender}")

    def unpause(self, sender: str) -> None:
        with self._operation("unpause") as op:
            self._require_owner(op.state, sender)
            if not op.state.paused:
                raise InvalidParameter("not paused")
            op.state.paused = False
            op.emit(EventType.UNPAUSED, account=sender)
        logger.info(f"{self.source} unpaused by {sender}")

    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        with self._operation("transfer_ownership") as op:
            self._require_owner(op.state, sender)
            if not new_owner:
                raise InvalidParameter("new owner is the zero address")
            op.state.owner = new_owner
            op.emit(EventType.OWNERSHIP_TRANSFERRED, previous_owner=sender, new_owner=new_owner)
        logger.info(f"{self.source} ownership transferred from {sender} to {new_owner}")

    # ─── Persistence ──────────────────────────────────────────────

    def persist(self, db: StorageDB) -> None:
        """Writes the committed state to DB."""
        db.set_state(self.STATE_KEY, self.state.model_dump_json())

    @classmethod
    def _load_state(cls, db: StorageDB, model: type) -> BaseModel:
        raw_json = db.get_state(cls.STATE_KEY)
        if not raw_json:
            raise KeyError(f"{cls.STATE_KEY} state not found")
        return model.model_validate_json(raw_json)
