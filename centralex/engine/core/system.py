# MIT License
# Copyright (c) 2025 Hashborn

from typing import Callable, Optional
import logging
import threading

from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ...protocol.types.common import InvalidParameter
from ..storage.db import StorageDB
from .clock import SystemClock
from .events import EventBus, EventLog
from .governance import GovernanceEngine
from .staking import StakingLedger
from .token import LocalToken

logger = logging.getLogger(__name__)


class StakingSystem:
    """
    Token, staking ledger and governance engine wired over one database.

    A fresh database is empty until `initialize` is called; afterwards every
    process opening the same file resumes from the last `commit`.
    """

    NETWORK_KEY = "network"

    def __init__(self, db_path: str, clock: Callable[[], int] = None, config: Optional[NetworkConfig] = None):
        self.db = StorageDB(db_path)
        self._lock = threading.RLock()
        self.clock = clock or SystemClock()
        self.config = config or CURRENT_NETWORK
        self.events = EventLog(bus=EventBus(), db=self.db)

        self.token: Optional[LocalToken] = None
        self.ledger: Optional[StakingLedger] = None
        self.governance: Optional[GovernanceEngine] = None
        self._load()

    def _load(self):
        if self.db.get_state(StakingLedger.STATE_KEY) is None:
            logger.info("System storage is empty (waiting for init)")
            return

        stored_network = self.db.get_state(self.NETWORK_KEY)
        if stored_network and stored_network != self.config.network_id:
            logger.warning(f"Database was initialized for {stored_network}, running as {self.config.network_id}")

        self.token = LocalToken.load(self.db)
        self.ledger = StakingLedger.load(self.db, self.token, events=self.events, clock=self.clock)
        self.governance = GovernanceEngine.load(self.db, self.ledger, events=self.events, clock=self.clock)
        logger.info(
            f"System loaded: total staked {self.ledger.total_staked}, "
            f"governance phase {self.governance.phase.name}"
        )

    @property
    def initialized(self) -> bool:
        return self.ledger is not None

    def initialize(self, owner: str) -> None:
        """Deploy token, ledger and governance with the network's initial parameters."""
        with self._lock:
            if self.initialized:
                raise InvalidParameter("already initialized")
            self.token = LocalToken(name=self.config.token_name, symbol=self.config.token_symbol)
            self.ledger = StakingLedger.from_config(owner, self.token, self.config, events=self.events, clock=self.clock)
            self.governance = GovernanceEngine(owner, self.ledger, events=self.events, clock=self.clock)
            self.db.set_state(self.NETWORK_KEY, self.config.network_id)
            self.commit()
        logger.info(f"System initialized on {self.config.network_id} with owner {owner}")

    def require_initialized(self) -> None:
        if not self.initialized:
            raise InvalidParameter("system is not initialized, run 'init' first")

    def commit(self) -> None:
        """Writes token, ledger and governance state and the pending events to DB in one transaction."""
        with self._lock:
            self.require_initialized()
            with self.db.batch():
                self.token.persist(self.db)
                self.ledger.persist(self.db)
                self.governance.persist(self.db)
                written = self.events.flush()
        logger.debug(f"Committed state and {written} event(s)")

    def close(self) -> None:
        self.db.close()
