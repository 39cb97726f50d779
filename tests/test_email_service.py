"""
Tests for the HTTP email service
"""

import json

import httpx
import pytest

from credit_ledger.core.config.settings import EmailSettings
from credit_ledger.core.exceptions import EmailServiceError
from credit_ledger.domains.billing.services import EmailService
from credit_ledger.domains.billing.services.email_templates import credits_purchased_template


def purchase_data(**overrides):
    data = {
        "shop_name": "acme.myshopify.com",
        "package_name": "SMALL",
        "credits": 100,
        "amount": "10.00",
        "currency": "USD",
        "billing_date": "Monday, 05 January 2026",
    }
    data.update(overrides)
    return data


class RecordingTransport:
    """MockTransport wrapper that keeps every request"""

    def __init__(self, status_code=202):
        self.requests = []
        self.status_code = status_code
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="provider says no")


@pytest.fixture
def recorder():
    return RecordingTransport()


@pytest.fixture
def service(email_settings, recorder):
    return EmailService(email_settings, transport=recorder.transport)


class TestInitialize:
    async def test_missing_api_key(self, email_settings):
        settings = email_settings.model_copy(update={"EMAIL_API_KEY": ""})

        with pytest.raises(EmailServiceError) as exc_info:
            await EmailService(settings).initialize()

        assert exc_info.value.code == "CONFIG_ERROR"

    async def test_invalid_sender(self, email_settings):
        settings = email_settings.model_copy(update={"EMAIL_SENDER_EMAIL": "billing"})

        with pytest.raises(EmailServiceError) as exc_info:
            await EmailService(settings).initialize()

        assert exc_info.value.code == "CONFIG_ERROR"

    async def test_rejected_key_on_verify(self, email_settings):
        settings = email_settings.model_copy(update={"EMAIL_VERIFY_ON_INIT": True})
        recorder = RecordingTransport(status_code=401)

        with pytest.raises(EmailServiceError) as exc_info:
            await EmailService(settings, transport=recorder.transport).initialize()

        assert exc_info.value.code == "INIT_ERROR"
        assert recorder.requests[0].method == "GET"
        assert str(recorder.requests[0].url) == settings.EMAIL_VERIFY_URL

    async def test_initializes_once(self, service, recorder):
        await service.initialize()
        await service.initialize()

        assert service.initialized is True
        assert recorder.requests == []


class TestSendCreditsPurchased:
    async def test_posts_provider_payload(self, service, recorder, email_settings):
        await service.send_credits_purchased("owner@acme.test", purchase_data())

        (request,) = recorder.requests
        assert request.method == "POST"
        assert str(request.url) == email_settings.EMAIL_API_URL
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["personalizations"][0]["to"] == [{"email": "owner@acme.test"}]
        assert body["personalizations"][0]["subject"] == (
            "Credits Purchase Confirmed - acme.myshopify.com"
        )
        assert body["from"] == {"email": "billing@studio.test", "name": "Content Studio"}
        assert [part["type"] for part in body["content"]] == ["text/plain", "text/html"]
        assert "100" in body["content"][0]["value"]

    async def test_invalid_recipient(self, service, recorder):
        with pytest.raises(EmailServiceError) as exc_info:
            await service.send_credits_purchased("owner-at-acme", purchase_data())

        assert exc_info.value.code == "INVALID_EMAIL"
        assert recorder.requests == []

    @pytest.mark.parametrize("field", ["shop_name", "credits", "amount", "currency"])
    async def test_missing_required_data(self, service, recorder, field):
        with pytest.raises(EmailServiceError) as exc_info:
            await service.send_credits_purchased("owner@acme.test", purchase_data(**{field: None}))

        assert exc_info.value.code == "DATA_ERROR"
        assert exc_info.value.email_details == {"missing": [field]}
        assert recorder.requests == []

    @pytest.mark.parametrize("field", ["package_name", "billing_date"])
    async def test_template_failure(self, service, recorder, field):
        data = purchase_data()
        del data[field]

        with pytest.raises(EmailServiceError) as exc_info:
            await service.send_credits_purchased("owner@acme.test", data)

        assert exc_info.value.code == "TEMPLATE_ERROR"
        assert recorder.requests == []

    async def test_provider_error_status(self, email_settings):
        recorder = RecordingTransport(status_code=500)
        service = EmailService(email_settings, transport=recorder.transport)

        with pytest.raises(EmailServiceError) as exc_info:
            await service.send_credits_purchased("owner@acme.test", purchase_data())

        assert exc_info.value.code == "SEND_ERROR"
        assert exc_info.value.email_details["status_code"] == 500

    async def test_network_error(self, email_settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = EmailService(email_settings, transport=httpx.MockTransport(handler))

        with pytest.raises(EmailServiceError) as exc_info:
            await service.send_credits_purchased("owner@acme.test", purchase_data())

        assert exc_info.value.code == "SEND_ERROR"

    def test_unknown_error_code_is_rejected(self):
        with pytest.raises(ValueError):
            EmailServiceError("odd", "SOMETHING_ELSE")


class TestCreditsPurchasedTemplate:
    def test_renders_every_field(self):
        template = credits_purchased_template(purchase_data(), "Content Studio")

        assert template.subject == "Credits Purchase Confirmed - acme.myshopify.com"
        for text in ("SMALL", "100", "10.00", "USD", "Monday, 05 January 2026"):
            assert text in template.body
            assert text in template.html_body
        assert "Content Studio" in template.body
