from app.flow.dispatcher import CALLBACK_HANDLERS, SESSION_HANDLERS
from app.flow.states import (
    CallbackAction,
    CallbackRoute,
    PaymentState,
    Session,
    SessionAction,
    is_valid_transition,
    parse_callback,
)
from app.services.session_service import SessionStore

from conftest import Ticker


def test_session_set_get_clear():
    store = SessionStore(ttl_seconds=60, clock=Ticker())
    store.set("1", Session(SessionAction.AWAITING_DEPOSIT_NOMINAL))

    assert store.get("1").action == SessionAction.AWAITING_DEPOSIT_NOMINAL
    assert store.get("2") is None
    assert store.clear("1") is True
    assert store.clear("1") is False
    assert store.get("1") is None


def test_session_expires_after_ttl():
    ticker = Ticker()
    store = SessionStore(ttl_seconds=60, clock=ticker)
    store.set("1", Session(SessionAction.AWAITING_RESTOCK))

    ticker.value = 59
    assert store.get("1") is not None

    ticker.value = 60
    assert store.get("1") is None
    assert len(store) == 0


def test_expired_sessions_are_evicted_on_write():
    ticker = Ticker()
    store = SessionStore(ttl_seconds=10, clock=ticker)
    store.set("1", Session(SessionAction.AWAITING_BROADCAST))

    ticker.value = 11
    store.set("2", Session(SessionAction.AWAITING_BROADCAST))

    assert len(store) == 1


def test_every_session_action_has_a_step_handler():
    assert set(SESSION_HANDLERS) == set(SessionAction)


def test_every_callback_action_has_a_handler():
    assert set(CALLBACK_HANDLERS) == set(CallbackAction)


def test_parse_callback():
    assert parse_callback("catalog") == CallbackRoute(CallbackAction.CATALOG)
    assert parse_callback("view:a@x.com") == CallbackRoute(CallbackAction.VIEW, "a@x.com")
    assert parse_callback("buy:a@x.com") == CallbackRoute(CallbackAction.BUY, "a@x.com")
    assert parse_callback("admin:stock") == CallbackRoute(CallbackAction.ADMIN, "stock")
    assert parse_callback("deposit_confirm:DEP1") == CallbackRoute(CallbackAction.DEPOSIT_CONFIRM, "DEP1")
    assert parse_callback("deposit_cancel:DEP1") == CallbackRoute(CallbackAction.DEPOSIT_CANCEL, "DEP1")


def test_malformed_callback_data_is_a_noop():
    for data in (None, "", "unknown", "buy", "buy:", "catalog:extra", "deposit_confirm", "deposit_cancel:"):
        assert parse_callback(data) == CallbackRoute(CallbackAction.NOOP)


def test_payment_transitions():
    assert is_valid_transition(PaymentState.NONE, PaymentState.PENDING)
    assert is_valid_transition(PaymentState.PENDING, PaymentState.PENDING)
    assert is_valid_transition(PaymentState.PENDING, PaymentState.CONFIRMED)
    assert is_valid_transition(PaymentState.CONFIRMED, PaymentState.NONE)

    assert not is_valid_transition(PaymentState.NONE, PaymentState.CONFIRMED)
    assert not is_valid_transition(PaymentState.CANCELLED, PaymentState.CONFIRMED)
    assert not is_valid_transition(PaymentState.EXPIRED, PaymentState.PENDING)
