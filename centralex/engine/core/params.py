"""
Delayed Parameter Store.

Economic parameters change in two phases: `schedule` records the new value
with an effective time one notice period ahead, and reads keep returning the
old value until that time has passed. Nothing runs in the background; the
switch happens lazily on the first read or write after `effective_at`.
"""
from typing import Dict
import logging

from ...protocol.config.economic_model import PARAM_BOUNDS, PARAM_UPDATE_DELAY
from ...protocol.types.common import EventType, InvalidParameter
from ...protocol.types.staking import DelayedParameter, StakingParams

logger = logging.getLogger(__name__)

# Parameter name -> event announcing a scheduled change
PARAM_EVENTS: Dict[str, EventType] = {
    "fee": EventType.FEE_SET,
    "withdrawal_lock_duration": EventType.WITHDRAWAL_LOCK_DURATION_SET,
    "withdrawal_unlock_duration": EventType.WITHDRAWAL_UNLOCK_DURATION_SET,
    "reward_share_percent": EventType.REWARD_SHARE_PERCENT_SET,
}


def validate(name: str, value: int) -> int:
    """Range-check a parameter value; raises InvalidParameter."""
    if name not in PARAM_BOUNDS:
        raise InvalidParameter(f"unknown parameter '{name}'")
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an integer", value)
    bounds = PARAM_BOUNDS[name]
    if not bounds.contains(value):
        raise InvalidParameter(bounds.error, {name: value})
    return value


def initial(name: str, value: int) -> DelayedParameter:
    """A parameter whose value is effective immediately."""
    validate(name, value)
    return DelayedParameter(current_value=value, pending_value=value, effective_at=0)


def schedule(param: DelayedParameter, value: int, now: int, delay: int = PARAM_UPDATE_DELAY) -> None:
    """
    Schedule `value` to become authoritative at now + delay.

    A pending value that already took effect is first materialized into
    current_value. A pending value that has not taken effect yet is replaced,
    so the old current value stays in force until the new deadline.
    """
    if now >= param.effective_at:
        param.current_value = param.pending_value
    param.pending_value = value
    param.effective_at = now + delay


class ParameterStore:
    """Named delayed parameters backed by a StakingParams model."""

    def __init__(self, params: StakingParams):
        self.params = params

    def _param(self, name: str) -> DelayedParameter:
        if name not in PARAM_EVENTS:
            raise InvalidParameter(f"unknown parameter '{name}'")
        return getattr(self.params, name)

    def get(self, name: str, now: int) -> int:
        return self._param(name).value_at(now)

    def set(self, name: str, value: int, now: int) -> EventType:
        """
        Validate and schedule a new value.

        Returns:
            The event type announcing the change; the caller emits it with the
            pending value, even though the value is not active yet.
        """
        param = self._param(name)
        validate(name, value)
        schedule(param, value, now)
        logger.info(f"Scheduled {name}={value} effective at {param.effective_at}")
        return PARAM_EVENTS[name]

    def pending(self, name: str, now: int) -> Dict[str, int]:
        """Snapshot of a parameter for display: value now, and what is queued."""
        param = self._param(name)
        return {
            "value": param.value_at(now),
            "pending_value": param.pending_value,
            "effective_at": param.effective_at,
        }
