"""
Token collaborator.

The staking ledger only needs a trusted transfer primitive. TokenCollaborator
describes it; LocalToken is an in-memory ERC20-style implementation used by
the local CLI deployment and the tests.
"""
from typing import Dict, Protocol, runtime_checkable
import logging

from pydantic import BaseModel, Field

from ...protocol.types.common import TransferFailed, InvalidParameter
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenCollaborator(Protocol):
    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None: ...

    def balance_of(self, account: str) -> int: ...


class TokenState(BaseModel):
    name: str
    symbol: str
    total_supply: int = 0
    balances: Dict[str, int] = Field(default_factory=dict)
    # owner -> spender -> remaining allowance
    allowances: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class LocalToken:
    """
    In-memory fungible token with transfer/approve semantics.

    Every failing call raises TransferFailed before touching any balance.
    """

    STATE_KEY = "token"

    def __init__(self, name: str = "Centralex", symbol: str = "CenX", state: TokenState = None):
        self.state = state or TokenState(name=name, symbol=symbol)

    @property
    def name(self) -> str:
        return self.state.name

    @property
    def symbol(self) -> str:
        return self.state.symbol

    @property
    def total_supply(self) -> int:
        return self.state.total_supply

    def balance_of(self, account: str) -> int:
        return self.state.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.state.allowances.get(owner, {}).get(spender, 0)

    def mint(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidParameter("mint amount should be more than 0")
        self.state.balances[account] = self.balance_of(account) + amount
        self.state.total_supply += amount
        logger.debug(f"Minted {amount} to {account}")

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidParameter("allowance cannot be negative")
        self.state.allowances.setdefault(owner, {})[spender] = amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise TransferFailed("negative amount")
        balance = self.balance_of(sender)
        if balance < amount:
            raise TransferFailed("transfer amount exceeds balance", {"have": balance, "need": amount})
        self.state.balances[sender] = balance - amount
        self.state.balances[recipient] = self.balance_of(recipient) + amount

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise TransferFailed("transfer amount exceeds allowance", {"have": allowed, "need": amount})
        self.transfer(owner, recipient, amount)
        self.state.allowances.setdefault(owner, {})[spender] = allowed - amount

    def persist(self, db: StorageDB) -> None:
        db.set_state(self.STATE_KEY, self.state.model_dump_json())

    @classmethod
    def load(cls, db: StorageDB) -> "LocalToken":
        raw_json = db.get_state(cls.STATE_KEY)
        if not raw_json:
            raise KeyError("token state not found")
        return cls(state=TokenState.model_validate_json(raw_json))
