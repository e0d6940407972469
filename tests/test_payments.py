import asyncio

import pytest

from app.core.exceptions import InvalidNominalError, NoPendingPaymentError, UserNotFoundError
from app.db.kv_store import Table
from app.flow.context import build_context
from app.services.payment_service import compute_bonus

from conftest import RecordingTelegram, make_settings, run


def _balance(store, user_id="1"):
    return store.snapshot()["users"][user_id]["balance"]


def _pending(store):
    return store.snapshot().get("pending_payments", {})


def test_bonus_is_floored():
    assert compute_bonus(20000, 10) == 2000
    assert compute_bonus(12345, 7.5) == 925
    assert compute_bonus(10000, 0) == 0
    assert compute_bonus(99999, 33.3) == 33299


def test_deposit_with_bonus_is_credited_once(ctx, store):
    async def scenario():
        await ctx.users.register("1", "buyer")
        payment, replaced = await ctx.payments.request_deposit("1", 20000, "buyer")
        receipt = await ctx.payments.confirm_payment("1")
        await ctx.background.drain()
        return payment, replaced, receipt

    payment, replaced, receipt = run(scenario())

    assert replaced is None
    assert (payment.nominal, payment.bonus_amount, payment.total_added) == (20000, 2000, 22000)
    assert payment.transaction_id.startswith("DEP")
    assert receipt.balance_after == 22000
    assert _balance(store) == 22000
    assert _pending(store) == {}
    assert store.snapshot()["config"]["totalTransactions"] == 1

    with pytest.raises(NoPendingPaymentError):
        run(ctx.payments.confirm_payment("1"))
    assert _balance(store) == 22000


def test_second_request_replaces_first(ctx, store):
    async def scenario():
        await ctx.users.register("1")
        first, _ = await ctx.payments.request_deposit("1", 20000)
        second, replaced = await ctx.payments.request_deposit("1", 50000)
        await ctx.payments.confirm_payment("1")
        return first, second, replaced

    first, second, replaced = run(scenario())

    assert replaced.transaction_id == first.transaction_id
    assert _balance(store) == 55000
    assert _pending(store) == {}


def test_confirm_bound_to_a_replaced_transaction_is_refused(ctx, store, telegram):
    async def scenario():
        await ctx.users.register("1")
        first, _ = await ctx.payments.request_deposit("1", 10000)
        first_message = await ctx.payments.send_instructions("1", first)
        second, _ = await ctx.payments.request_deposit("1", 5000000)
        return first, first_message, second

    first, first_message, second = run(scenario())

    edit = telegram.to("1", "editMessageText")[0]
    assert edit["message_id"] == first_message
    assert first.transaction_id in edit["text"]

    for attempt in (ctx.payments.confirm_payment, ctx.payments.cancel_payment):
        with pytest.raises(NoPendingPaymentError) as exc_info:
            run(attempt("1", first.transaction_id))
        assert exc_info.value.details["stale"] is True

    assert _balance(store) == 0
    assert _pending(store)["1"]["transactionId"] == second.transaction_id

    receipt = run(ctx.payments.confirm_payment("1", second.transaction_id))
    assert receipt.balance_after == 5500000


def test_replacing_an_unsent_request_sends_nothing(ctx, telegram):
    async def scenario():
        await ctx.users.register("1")
        await ctx.payments.request_deposit("1", 10000)
        await ctx.payments.request_deposit("1", 20000)

    run(scenario())

    assert telegram.to("1") == []


def test_cancel_never_credits(ctx, store, telegram):
    async def scenario():
        await ctx.users.register("1")
        payment, _ = await ctx.payments.request_deposit("1", 20000)
        await ctx.payments.send_instructions("1", payment)
        cancelled = await ctx.payments.cancel_payment("1")
        return payment, cancelled

    payment, cancelled = run(scenario())

    assert cancelled.transaction_id == payment.transaction_id
    assert _balance(store) == 0
    assert _pending(store) == {}
    # The instruction message is edited in place
    edits = telegram.to("1", "editMessageText")
    assert len(edits) == 1
    assert "Cancelled" in edits[0]["text"]

    with pytest.raises(NoPendingPaymentError):
        run(ctx.payments.cancel_payment("1"))


def test_sweep_expires_only_old_records(ctx, store, clock, telegram):
    async def scenario():
        await ctx.users.register("1")
        await ctx.users.register("2")
        await ctx.payments.request_deposit("1", 20000)
        clock.advance(minutes=6)
        await ctx.payments.request_deposit("2", 20000)
        clock.advance(minutes=10)
        # "1" is 16 minutes old, "2" is 10 minutes old
        return await ctx.payments.sweep_expired()

    assert run(scenario()) == 1

    pending = _pending(store)
    assert list(pending) == ["2"]
    assert _balance(store, "1") == 0
    assert any("Expired" in text for text in telegram.texts("1"))


def test_sweep_skips_a_malformed_record(ctx, store, clock):
    async def scenario():
        await ctx.users.register("2")
        await ctx.payments.request_deposit("2", 20000)
        clock.advance(minutes=16)
        await store.update(Table.PENDING_PAYMENTS, lambda doc: doc.__setitem__("1", {"userId": "1", "nominal": "abc"}))
        return await ctx.payments.sweep_expired()

    assert run(scenario()) == 1

    assert list(_pending(store)) == ["1"]
    assert [payment.user_id for payment in run(ctx.payments.list_pending())] == []


def test_confirm_after_ttl_does_not_credit(ctx, store, clock):
    async def scenario():
        await ctx.users.register("1")
        await ctx.payments.request_deposit("1", 20000)
        clock.advance(minutes=16)
        await ctx.payments.confirm_payment("1")

    with pytest.raises(NoPendingPaymentError) as exc_info:
        run(scenario())

    assert exc_info.value.details["expired"] is True
    assert _balance(store) == 0
    assert _pending(store) == {}


def test_sweep_leaves_a_replaced_record_alone(ctx, store, clock):
    async def scenario():
        await ctx.users.register("1")
        old, _ = await ctx.payments.request_deposit("1", 20000)
        clock.advance(minutes=16)
        await ctx.payments.request_deposit("1", 30000)
        return await ctx.payments._remove_if_current(old)

    assert run(scenario()) is False
    assert run(ctx.payments.get_pending("1")).nominal == 30000


def test_concurrent_confirms_credit_once(ctx, store):
    async def scenario():
        await ctx.users.register("1")
        await ctx.payments.request_deposit("1", 20000)
        return await asyncio.gather(
            ctx.payments.confirm_payment("1"),
            ctx.payments.confirm_payment("1"),
            ctx.payments.sweep_expired(),
            return_exceptions=True
        )

    results = run(scenario())

    assert sum(isinstance(r, NoPendingPaymentError) for r in results) == 1
    assert _balance(store) == 22000


def test_nominal_bounds(ctx):
    run(ctx.users.register("1"))

    for nominal in (None, 0, 9999, 10000001):
        with pytest.raises(InvalidNominalError):
            run(ctx.payments.request_deposit("1", nominal))

    payment, _ = run(ctx.payments.request_deposit("1", 10000))
    assert payment.nominal == 10000


def test_unregistered_user_cannot_deposit(ctx):
    with pytest.raises(UserNotFoundError):
        run(ctx.payments.request_deposit("1", 20000))


def test_instructions_use_qr_photo_when_configured(store, clock):
    config = make_settings(QRIS_IMAGE_URL="https://example.com/qris.png")
    telegram = RecordingTelegram(config)
    ctx = build_context(config, store=store, telegram=telegram, clock=clock)

    async def scenario():
        await ctx.users.register("1")
        payment, _ = await ctx.payments.request_deposit("1", 20000)
        message_id = await ctx.payments.send_instructions("1", payment)
        await ctx.payments.confirm_payment("1")
        return message_id

    message_id = run(scenario())

    photo = telegram.to("1", "sendPhoto")[0]
    assert photo["photo"] == "https://example.com/qris.png"
    assert "deposit_confirm" in str(photo["reply_markup"])

    caption_edit = telegram.to("1", "editMessageCaption")[0]
    assert caption_edit["message_id"] == message_id
    assert "Confirmed" in caption_edit["caption"]
