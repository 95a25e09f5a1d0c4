"""Tests for POST /api/sms/send."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from speedyvan_verify.config import settings
from speedyvan_verify.main import app
from speedyvan_verify.routers.sms import get_sms_dispatcher
from speedyvan_verify.services.sms import (
    ProviderResponse,
    SmsEvent,
    SmsGatewayClientError,
    UnknownTemplateError,
)

HEADERS = {"X-Internal-Key": "ops-key"}
BODY = {
    "type": "BOOKING_CONFIRMED",
    "to": "07901846297",
    "data": {"booking_reference": "SV-1001", "date": "Friday", "time": "09:00"},
}


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.send = AsyncMock(
        return_value=ProviderResponse(
            success=True, status_code=201, attempts=2, message_id="msg-9"
        )
    )
    return mock


@pytest.fixture
def api(client, dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "internal_api_key", "ops-key")
    app.dependency_overrides[get_sms_dispatcher] = lambda: dispatcher
    return client


class TestSendSms:
    """Tests for the internal SMS endpoint."""

    @pytest.mark.asyncio
    async def test_send(self, api, dispatcher):
        response = await api.post("/api/sms/send", json=BODY, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "status_code": 201,
            "attempts": 2,
            "message_id": "msg-9",
        }
        dispatcher.send.assert_awaited_once_with(
            SmsEvent(type=BODY["type"], to=BODY["to"], data=BODY["data"])
        )

    @pytest.mark.asyncio
    async def test_requires_key(self, api):
        response = await api.post("/api/sms/send", json=BODY)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_mobile_rejected(self, api, dispatcher):
        response = await api.post(
            "/api/sms/send", json={**BODY, "to": "02079460000"}, headers=HEADERS
        )

        assert response.status_code == 422
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_template(self, api, dispatcher):
        dispatcher.send.side_effect = UnknownTemplateError("Unknown SMS template: NOPE")

        response = await api.post(
            "/api/sms/send", json={**BODY, "type": "NOPE"}, headers=HEADERS
        )

        assert response.status_code == 422
        assert "NOPE" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_gateway_rejection(self, api, dispatcher):
        dispatcher.send.side_effect = SmsGatewayClientError("bad number", 400)

        response = await api.post("/api/sms/send", json=BODY, headers=HEADERS)

        assert response.status_code == 502
