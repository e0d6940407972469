from fastapi.testclient import TestClient

from app.core.exceptions import PersistenceError
from app.flow.context import build_context
from app.main import create_app

from conftest import RecordingTelegram, make_account, make_settings, message_update, run

WEBHOOK = "/api/v1/webhook"


def _update_json(user_id=111, text="/start", update_id=1):
    return message_update(user_id, text, update_id=update_id).model_dump(by_alias=True, exclude_none=True)


def test_update_is_processed_and_acknowledged(ctx, telegram, store):
    with TestClient(create_app(ctx)) as client:
        response = client.post(WEBHOOK, json=_update_json())

    assert response.status_code == 200
    assert response.json() == {"ok": True, "status": "success"}
    assert "111" in store.snapshot()["users"]
    assert len(telegram.to("111", "sendMessage")) == 1


def test_ignored_update_is_still_acknowledged(ctx):
    with TestClient(create_app(ctx)) as client:
        response = client.post(WEBHOOK, json={"update_id": 5})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_malformed_payload_is_rejected(ctx):
    with TestClient(create_app(ctx)) as client:
        bad_json = client.post(WEBHOOK, content=b"{not json", headers={"Content-Type": "application/json"})
        no_id = client.post(WEBHOOK, json={"message": {"text": "hi"}})

    assert bad_json.status_code == 400
    assert bad_json.json()["code"] == "HTTP_ERROR"
    assert no_id.status_code == 400


def test_dispatch_fault_is_not_acknowledged(ctx, telegram):
    async def broken_is_banned(user_id):
        raise RuntimeError("bug")

    ctx.moderation.is_banned = broken_is_banned

    with TestClient(create_app(ctx), raise_server_exceptions=False) as client:
        response = client.post(WEBHOOK, json=_update_json())

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert telegram.to("111", "sendMessage") == []


def test_storage_outage_during_dispatch_is_retryable(ctx, store):
    async def broken_is_banned(user_id):
        raise PersistenceError("store down")

    ctx.moderation.is_banned = broken_is_banned

    with TestClient(create_app(ctx), raise_server_exceptions=False) as client:
        response = client.post(WEBHOOK, json=_update_json())

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"


def test_secret_token_is_enforced(store, clock):
    config = make_settings(WEBHOOK_SECRET="s3cret")
    telegram = RecordingTelegram(config)
    ctx = build_context(config, store=store, telegram=telegram, clock=clock)

    with TestClient(create_app(ctx)) as client:
        missing = client.post(WEBHOOK, json=_update_json(update_id=1))
        wrong = client.post(WEBHOOK, json=_update_json(update_id=2), headers={"X-Telegram-Bot-Api-Secret-Token": "nope"})
        right = client.post(WEBHOOK, json=_update_json(update_id=3), headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "AUTHENTICATION_FAILED"
    assert right.status_code == 200
    assert len(telegram.to("111", "sendMessage")) == 1


def test_webhook_verification_endpoint(ctx):
    with TestClient(create_app(ctx)) as client:
        response = client.get(WEBHOOK)

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_status_reports_counters_and_uptime(ctx, clock):
    run(ctx.catalog.add_accounts([make_account("a@x.com"), make_account("b@x.com")]))

    with TestClient(create_app(ctx)) as client:
        client.post(WEBHOOK, json=_update_json())
        clock.advance(hours=1, minutes=30)
        response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert (data["users"], data["stock"], data["transactions"]) == (1, 2, 0)
    assert data["uptime_seconds"] == 5400
    assert data["deployed_at"].startswith("2026-01-01T12:00:00")


def test_health_and_liveness(ctx):
    with TestClient(create_app(ctx)) as client:
        health = client.get("/health")
        live = client.get("/live")
        root = client.get("/")

    assert health.status_code == 200
    assert health.json()["checks"]["database"] == "memory"
    assert health.json()["checks"]["telegram"] == "configured"
    assert live.json() == {"status": "alive"}
    assert root.json()["status"] == "running"
