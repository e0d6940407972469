import pytest

from app.core.exceptions import AdminOnlyError, ValidationError
from app.flow.dispatcher import dispatch_update
from app.flow.states import SessionAction
from utils.constants import ERROR_ADMIN_ONLY

from conftest import ADMIN_ID, callback_update, make_account, message_update, run

USER = 111
ADMIN = int(ADMIN_ID)


def _send(ctx, update):
    async def scenario():
        result = await dispatch_update(update, ctx)
        await ctx.background.drain()
        return result

    return run(scenario())


def test_start_registers_and_shows_menu(ctx, store, telegram):
    result = _send(ctx, message_update(USER, "/start"))

    assert result["status"] == "success"
    assert store.snapshot()["users"][str(USER)]["balance"] == 0
    welcome = telegram.to(USER, "sendMessage")[0]
    assert "WELCOME" in welcome["text"]
    assert "catalog" in str(welcome["reply_markup"])


def test_banned_start_is_denied_without_mutation(ctx, store, telegram):
    run(ctx.users.set_banned(str(USER), True, "manual"))
    before = store.snapshot()

    result = _send(ctx, message_update(USER, "/start", username="newname"))

    assert result["status"] == "banned"
    assert store.snapshot()["users"] == before["users"]
    assert "Access Denied" in telegram.texts(USER)[0]


def test_banned_callback_gets_alert(ctx, telegram):
    run(ctx.users.set_banned(str(USER), True, "manual"))

    result = _send(ctx, callback_update(USER, "catalog"))

    assert result["status"] == "banned"
    assert telegram.methods() == ["answerCallbackQuery"]
    assert telegram.calls[0][1]["show_alert"] is True


def test_spam_bans_on_message_after_limit(ctx, store, telegram):
    results = [_send(ctx, message_update(USER, "/balance", update_id=i)) for i in range(1, 7)]

    assert [r["status"] for r in results] == ["success"] * 5 + ["auto_banned"]
    user = store.snapshot()["users"][str(USER)]
    assert user["isBanned"] is True
    assert user["banReason"] == "auto-spam"
    assert any("spamming" in text for text in telegram.texts(USER))
    assert any("Auto-Ban" in text for text in telegram.texts(ADMIN_ID))

    assert _send(ctx, message_update(USER, "/start", update_id=7))["status"] == "banned"

    run(ctx.admin.unban(ADMIN_ID, str(USER)))
    assert _send(ctx, message_update(USER, "/start", update_id=8))["status"] == "success"


def test_slow_messages_are_never_limited(ctx, clock):
    statuses = []
    for i in range(1, 11):
        statuses.append(_send(ctx, message_update(USER, "/balance", update_id=i))["status"])
        clock.advance(seconds=2)

    assert statuses == ["success"] * 10


def test_admin_is_never_rate_limited(ctx):
    results = [_send(ctx, message_update(ADMIN, "/balance", update_id=i)) for i in range(1, 10)]
    assert all(r["status"] == "success" for r in results)


def test_plain_text_from_user_is_ignored(ctx, telegram):
    result = _send(ctx, message_update(USER, "hello there"))

    assert result["status"] == "ignored"
    assert telegram.calls == []


def test_plain_text_from_admin_gets_help(ctx, telegram):
    _send(ctx, message_update(ADMIN, "hello"))
    assert "Admin Commands" in telegram.texts(ADMIN_ID)[0]


def test_deposit_session_routes_amount(ctx, store, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))
    _send(ctx, message_update(USER, "/deposit", update_id=2))
    assert ctx.sessions.get(str(USER)).action == SessionAction.AWAITING_DEPOSIT_NOMINAL

    _send(ctx, message_update(USER, "abc", update_id=3))
    assert ctx.sessions.get(str(USER)) is not None
    assert "Invalid amount" in telegram.texts(USER)[-1]

    _send(ctx, message_update(USER, "20.000", update_id=4))
    assert ctx.sessions.get(str(USER)) is None
    pending = store.snapshot()["pending_payments"][str(USER)]
    assert (pending["nominal"], pending["totalAdded"]) == (20000, 22000)
    assert pending["messageId"] is not None

    confirm = f"deposit_confirm:{pending['transactionId']}"
    _send(ctx, callback_update(USER, confirm, update_id=5, message_id=pending["messageId"]))
    assert store.snapshot()["users"][str(USER)]["balance"] == 22000


def test_buttons_of_a_replaced_deposit_do_not_confirm_the_new_one(ctx, store, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))
    _send(ctx, message_update(USER, "/deposit 10000", update_id=2))
    first = store.snapshot()["pending_payments"][str(USER)]
    _send(ctx, message_update(USER, "/deposit 5000000", update_id=3))

    # The old instruction message loses its buttons
    edit = telegram.to(USER, "editMessageText")[-1]
    assert edit["message_id"] == first["messageId"]
    assert "Replaced" in edit["text"]
    assert "reply_markup" not in edit

    stale = f"deposit_confirm:{first['transactionId']}"
    _send(ctx, callback_update(USER, stale, update_id=4, message_id=first["messageId"]))

    assert store.snapshot()["users"][str(USER)]["balance"] == 0
    assert store.snapshot()["pending_payments"][str(USER)]["nominal"] == 5000000
    assert "replaced by a newer one" in telegram.to(USER, "sendMessage")[-1]["text"]


def test_command_clears_session(ctx, store):
    _send(ctx, message_update(USER, "/start", update_id=1))
    _send(ctx, message_update(USER, "/deposit", update_id=2))

    _send(ctx, message_update(USER, "/catalog", update_id=3))

    assert ctx.sessions.get(str(USER)) is None
    assert "pending_payments" not in store.snapshot()


def test_buy_through_buttons(ctx, store, telegram):
    run(ctx.catalog.add_accounts([make_account("a@x.com")]))
    _send(ctx, message_update(USER, "/start", update_id=1))
    run(ctx.users.credit(str(USER), 100000))

    _send(ctx, callback_update(USER, "view:a@x.com", update_id=2))
    assert "buy:a@x.com" in str(telegram.to(USER, "editMessageText")[-1]["reply_markup"])

    _send(ctx, callback_update(USER, "buy:a@x.com", update_id=3))
    receipt = telegram.to(USER, "sendMessage")[-1]["text"]
    assert "Purchase Successful" in receipt
    assert "a@x.com" in receipt
    assert store.snapshot()["users"][str(USER)]["balance"] == 50000

    _send(ctx, callback_update(USER, "buy:a@x.com", update_id=4))
    assert "just sold" in telegram.to(USER, "sendMessage")[-1]["text"]


def test_quantity_stepper_and_multi_buy(ctx, store, telegram):
    accounts = [make_account("a@x.com"), make_account("b@x.com"), make_account("c@x.com")]
    run(ctx.catalog.add_accounts(accounts))
    _send(ctx, message_update(USER, "/start", update_id=1))
    run(ctx.users.credit(str(USER), 200000))

    # Quantities above the stock are clamped
    _send(ctx, callback_update(USER, "view:a@x.com:7", update_id=2))
    view = telegram.to(USER, "editMessageText")[-1]
    assert "Quantity:</b> 3" in view["text"]
    assert "Rp 150.000" in view["text"]
    buttons = [b["callback_data"] for row in view["reply_markup"]["inline_keyboard"] for b in row]
    assert buttons == ["view:a@x.com:2", "noop", "noop", "noop", "buy:a@x.com:3", "catalog"]

    _send(ctx, callback_update(USER, "view:a@x.com:2", update_id=3))
    buttons = [b["callback_data"] for row in telegram.to(USER, "editMessageText")[-1]["reply_markup"]["inline_keyboard"] for b in row]
    assert buttons == ["view:a@x.com:1", "noop", "view:a@x.com:3", "view:a@x.com:3", "buy:a@x.com:2", "catalog"]

    _send(ctx, callback_update(USER, "buy:a@x.com:2", update_id=4))
    receipt = telegram.to(USER, "sendMessage")[-1]["text"]
    assert "Quantity:</b> 2" in receipt
    assert "a@x.com" in receipt and "b@x.com" in receipt
    assert store.snapshot()["users"][str(USER)]["balance"] == 100000

    _send(ctx, callback_update(USER, "buy:c@x.com:2", update_id=5))
    assert "Only 1 left" in telegram.to(USER, "sendMessage")[-1]["text"]
    assert list(store.snapshot()["accounts"]) == ["c@x.com"]


def test_insufficient_balance_reply(ctx, telegram):
    run(ctx.catalog.add_accounts([make_account("a@x.com")]))
    _send(ctx, message_update(USER, "/start", update_id=1))

    _send(ctx, callback_update(USER, "buy:a@x.com", update_id=2))

    assert "Insufficient balance" in telegram.to(USER, "sendMessage")[-1]["text"]


def test_admin_commands_require_admin(ctx, store, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))

    _send(ctx, message_update(USER, "/addbalance 111 50000", update_id=2))

    assert telegram.texts(USER)[-1] == ERROR_ADMIN_ONLY
    assert store.snapshot()["users"][str(USER)]["balance"] == 0


def test_admin_balance_ban_and_restock(ctx, store, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))

    _send(ctx, message_update(ADMIN, "/addbalance 111 +50.000", update_id=2))
    assert store.snapshot()["users"][str(USER)]["balance"] == 50000

    _send(ctx, message_update(ADMIN, "/addbalance 111 -60000", update_id=3))
    assert store.snapshot()["users"][str(USER)]["balance"] == 50000

    _send(ctx, message_update(ADMIN, "/restock\nNetflix|50000|A@X.com|pw|1 month|note\nbroken line", update_id=4))
    assert "a@x.com" in store.snapshot()["accounts"]
    assert "Rejected lines" in telegram.texts(ADMIN_ID)[-1]

    _send(ctx, message_update(ADMIN, "/ban 111 fraud", update_id=5))
    assert store.snapshot()["users"][str(USER)]["banReason"] == "fraud"
    assert _send(ctx, message_update(USER, "/start", update_id=6))["status"] == "banned"


def test_restock_and_broadcast_sessions(ctx, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))
    run(ctx.users.register("222"))
    telegram.unreachable.add("222")

    _send(ctx, message_update(ADMIN, "/restock", update_id=2))
    assert ctx.sessions.get(ADMIN_ID).action == SessionAction.AWAITING_RESTOCK
    _send(ctx, message_update(ADMIN, "Spotify|20000|s@x.com|pw", update_id=3))
    assert run(ctx.catalog.stock_count()) == 1

    _send(ctx, message_update(ADMIN, "/broadcast", update_id=4))
    _send(ctx, message_update(ADMIN, "New stock!", update_id=5))

    assert "New stock!" in telegram.texts(USER)
    admin_texts = telegram.texts(ADMIN_ID)
    assert any("Broadcast started" in text for text in admin_texts)
    report = next(text for text in admin_texts if "Broadcast finished" in text)
    assert "Sent: 1" in report
    assert "Failed: 1" in report


def test_admin_confirms_deposit(ctx, store, telegram):
    _send(ctx, message_update(USER, "/start", update_id=1))
    _send(ctx, message_update(USER, "/deposit 50000", update_id=2))

    _send(ctx, message_update(ADMIN, "/confirmdeposit 111", update_id=3))

    assert store.snapshot()["users"][str(USER)]["balance"] == 55000
    assert "confirmed" in telegram.texts(ADMIN_ID)[-1]

    _send(ctx, message_update(ADMIN, "/canceldeposit 111", update_id=4))
    assert "no pending deposit" in telegram.texts(ADMIN_ID)[-1]


def test_admin_settings(ctx, store):
    _send(ctx, message_update(ADMIN, "/setbonus 5", update_id=1))
    _send(ctx, message_update(ADMIN, "/setnotif -100123", update_id=2))

    config = store.snapshot()["config"]
    assert config["bonusPercentage"] == 5.0
    assert config["logChannelId"] == "-100123"


def test_unknown_callback_is_acknowledged(ctx, telegram):
    _send(ctx, callback_update(USER, "whatever:1"))
    assert telegram.methods() == ["answerCallbackQuery"]


def test_broadcast_runs_in_the_background(ctx, telegram):
    run(ctx.users.register("222"))

    with pytest.raises(ValidationError):
        ctx.admin.start_broadcast(ADMIN_ID, ADMIN_ID, "   ")
    with pytest.raises(AdminOnlyError):
        ctx.admin.start_broadcast("222", "222", "Hello")

    async def scenario():
        ctx.admin.start_broadcast(ADMIN_ID, ADMIN_ID, "Hello")
        spawned, delivered_early = ctx.background.pending, telegram.texts("222")
        await ctx.background.drain()
        return spawned, delivered_early

    spawned, delivered_early = run(scenario())

    assert spawned == 1
    assert delivered_early == []
    assert telegram.texts("222") == ["Hello"]
    assert any("Sent: 1" in text for text in telegram.texts(ADMIN_ID))
