"""
app/flow/states.py

Purpose: Defines the conversation and payment states

- SessionAction: multi-step interactions held in the session store
- CallbackAction: every inline button the bot emits
- PaymentState: deposit lifecycle and its valid transitions
- Single source of truth for flow stages
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field


class SessionAction(str, Enum):
    """
    What the bot is waiting for from a user.
    Every member must have a step handler in the dispatcher.
    """

    AWAITING_DEPOSIT_NOMINAL = "awaiting_deposit_nominal"

    # Admin steps
    AWAITING_RESTOCK = "awaiting_restock"
    AWAITING_BROADCAST = "awaiting_broadcast"


@dataclass
class Session:
    """
    In-memory conversation state for one user.
    Advisory only: never used to decide authorization.
    """
    action: SessionAction
    data: Dict[str, Any] = field(default_factory=dict)


class CallbackAction(str, Enum):
    """
    Inline button actions. Values are the callback_data prefixes.
    """

    HOME = "home"
    CATALOG = "catalog"
    VIEW = "view"
    BUY = "buy"
    BALANCE = "balance"
    DEPOSIT = "deposit"
    DEPOSIT_CONFIRM = "deposit_confirm"
    DEPOSIT_CANCEL = "deposit_cancel"
    ADMIN = "admin"
    NOOP = "noop"


# Actions whose callback_data carries an argument after ":"
CALLBACKS_WITH_ARGUMENT = {
    CallbackAction.VIEW,
    CallbackAction.BUY,
    CallbackAction.DEPOSIT_CONFIRM,
    CallbackAction.DEPOSIT_CANCEL,
    CallbackAction.ADMIN,
}


@dataclass(frozen=True)
class CallbackRoute:
    action: CallbackAction
    argument: Optional[str] = None


def parse_callback(data: Optional[str]) -> CallbackRoute:
    """
    Parses callback_data into a CallbackRoute.

    Unknown or malformed data maps to NOOP so the button is
    acknowledged without side effects.
    """
    if not data:
        return CallbackRoute(CallbackAction.NOOP)

    prefix, sep, argument = data.partition(":")
    try:
        action = CallbackAction(prefix)
    except ValueError:
        return CallbackRoute(CallbackAction.NOOP)

    if action in CALLBACKS_WITH_ARGUMENT:
        if not sep or not argument:
            return CallbackRoute(CallbackAction.NOOP)
        return CallbackRoute(action, argument)

    if sep:
        return CallbackRoute(CallbackAction.NOOP)
    return CallbackRoute(action)


class PaymentState(str, Enum):
    """
    Deposit lifecycle. Terminal states delete the pending record,
    which brings the user back to NONE.
    """

    NONE = "NONE"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


PAYMENT_TRANSITIONS: Dict[PaymentState, List[PaymentState]] = {
    PaymentState.NONE: [PaymentState.PENDING],
    PaymentState.PENDING: [
        PaymentState.PENDING,  # newer request replaces the old one
        PaymentState.CONFIRMED,
        PaymentState.CANCELLED,
        PaymentState.EXPIRED,
    ],
    PaymentState.CONFIRMED: [PaymentState.NONE],
    PaymentState.CANCELLED: [PaymentState.NONE],
    PaymentState.EXPIRED: [PaymentState.NONE],
}


def is_valid_transition(from_state: PaymentState, to_state: PaymentState) -> bool:
    """
    Checks if a payment state transition is valid.
    """
    return to_state in PAYMENT_TRANSITIONS.get(from_state, [])
