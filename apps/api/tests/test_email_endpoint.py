from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

PAYLOAD = {
    "to": "friend@example.com",
    "redemptionCode": "ABCD-EFGH-JKLM-NPQR",
    "amount": "15",
    "sender": "0x00000000000000000000000000000000000000a1",
    "message": "Congrats",
    "template": "holiday",
}


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_send_email(app_with_db, email_backend) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/email", json=PAYLOAD)

    assert response.status_code == 200
    assert response.json() == {"message": "Email sent successfully"}
    message = email_backend.sent_messages[0]
    assert message["To"] == "friend@example.com"
    assert message["Subject"] == "Season's Greetings! 🎄 Your cUSD Gift Card is here!"


@pytest.mark.asyncio
async def test_send_email_requires_fields(app_with_db, email_backend) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/email", json={"to": "friend@example.com"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields"
    assert email_backend.sent_messages == []


@pytest.mark.asyncio
async def test_send_email_delivery_failure(app_with_db, email_backend, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(email_backend, "send_email", AsyncMock(side_effect=httpx.ConnectError("refused")))

    async with _client(app) as client:
        response = await client.post("/api/email", json=PAYLOAD)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to send email"
