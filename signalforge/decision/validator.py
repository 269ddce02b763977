"""Post-decision validation — the gate that actually blocks execution."""

import logging
from typing import Optional

from signalforge.decision.conditions import OPEN_OR_ADD, confidence_gate, within_position_limit
from signalforge.decision.models import Action
from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge.decision")


def validate_action(
    action: Action,
    confidence: float,
    config: Optional[InstrumentConfig],
    broker=None,
) -> bool:
    """Return whether *action* may be executed right now.

    Non-actionable actions are always valid.  Actionable ones must pass the
    same threshold the decision used, open/add must fit under
    ``max_positions``, and the collaborator's live
    ``is_trading_allowed()``.  Never raises; any problem yields ``False``.
    """
    if not action.is_actionable:
        return True
    if config is None:
        logger.warning("Validation of %s failed: instrument not configured", action.value)
        return False
    if broker is None:
        logger.warning("Validation of %s on %s failed: no execution collaborator",
                       action.value, config.instrument)
        return False

    if not confidence_gate(config, action, confidence):
        logger.debug("Validation of %s on %s failed: confidence %.1f off threshold",
                     action.value, config.instrument, confidence)
        return False

    if action in OPEN_OR_ADD and not within_position_limit(config, broker):
        logger.info("Validation of %s on %s failed: position limit %d reached",
                    action.value, config.instrument, config.max_positions)
        return False

    try:
        allowed = bool(broker.is_trading_allowed())
    except Exception as exc:
        logger.warning("is_trading_allowed() raised for %s: %s", config.instrument, exc)
        return False
    if not allowed:
        logger.info("Validation of %s on %s failed: trading not allowed",
                    action.value, config.instrument)
    return allowed
