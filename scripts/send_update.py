"""
Manual smoke test: posts a Telegram /start update to a running server
"""
import httpx
import asyncio
import os
import time

async def send_update():
    """Simulate what Telegram sends to our webhook"""

    url = os.getenv("WEBHOOK_URL", "http://localhost:8000/api/v1/webhook")
    secret = os.getenv("WEBHOOK_SECRET", "")

    user_id = int(os.getenv("TEST_USER_ID", "123456789"))  # Replace with your Telegram id
    update = {
        "update_id": int(time.time()),
        "message": {
            "message_id": 1,
            "from": {"id": user_id, "is_bot": False, "first_name": "Test", "username": "tester"},
            "chat": {"id": user_id, "type": "private"},
            "date": int(time.time()),
            "text": "/start"
        }
    }

    headers = {"X-Telegram-Bot-Api-Secret-Token": secret} if secret else {}

    print(f"🧪 Testing webhook: {url}")
    print(f"📤 Sending update: {update}\n")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(url, json=update, headers=headers, timeout=10.0)

            print(f"✅ Status: {response.status_code}")
            print(f"📥 Response: {response.text[:200]}")

            if response.status_code == 200:
                print("\n✅ Webhook is working!")
            else:
                print(f"\n❌ Webhook returned {response.status_code}")

    except httpx.HTTPError as e:
        print(f"❌ Error: {e}")

if __name__ == "__main__":
    asyncio.run(send_update())
