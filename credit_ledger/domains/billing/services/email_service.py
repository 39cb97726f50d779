"""
Email Service

Sends transactional email through a SendGrid-compatible HTTP API. Every
failure is raised as EmailServiceError with a `code` naming the stage.
"""

from typing import Any, Dict, Optional

import httpx

from credit_ledger.core.config.settings import EmailSettings
from credit_ledger.core.exceptions import EmailServiceError
from credit_ledger.core.logging import get_logger
from credit_ledger.shared.helpers import validate_email
from .email_templates import EmailTemplate, credits_purchased_template

logger = get_logger(__name__)

CREDITS_PURCHASED_REQUIRED = ("shop_name", "credits", "amount", "currency")


class EmailService:
    """HTTP email client; `transport` lets tests swap the network for a mock"""

    def __init__(
        self,
        settings: Optional[EmailSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or EmailSettings()
        self.transport = transport
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.EMAIL_TIMEOUT_SECONDS, transport=self.transport
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.EMAIL_API_KEY}",
            "Content-Type": "application/json",
        }

    async def initialize(self) -> None:
        """Check configuration and, when enabled, that the API key is accepted"""
        if self._initialized:
            return

        if not self.settings.EMAIL_API_KEY:
            raise EmailServiceError("Email API key is not configured", "CONFIG_ERROR")
        if not validate_email(self.settings.EMAIL_SENDER_EMAIL):
            raise EmailServiceError(
                "Email sender address is not configured",
                "CONFIG_ERROR",
                {"sender": self.settings.EMAIL_SENDER_EMAIL},
            )

        if self.settings.EMAIL_VERIFY_ON_INIT:
            try:
                async with self._client() as client:
                    response = await client.get(
                        self.settings.EMAIL_VERIFY_URL, headers=self._headers()
                    )
                    response.raise_for_status()
            except httpx.HTTPError as e:
                raise EmailServiceError(
                    f"Email provider verification failed: {e}", "INIT_ERROR"
                ) from e

        self._initialized = True
        logger.info("Email service initialized", verify=self.settings.EMAIL_VERIFY_ON_INIT)

    async def send_credits_purchased(self, to: str, data: Dict[str, Any]) -> None:
        """Send the purchase confirmation to `to`"""
        await self.initialize()

        if not validate_email(to):
            raise EmailServiceError("Invalid recipient email", "INVALID_EMAIL", {"to": to})

        missing = [key for key in CREDITS_PURCHASED_REQUIRED if data.get(key) in (None, "")]
        if missing:
            raise EmailServiceError(
                "Missing required email data", "DATA_ERROR", {"missing": missing}
            )

        try:
            template = credits_purchased_template(data, self.settings.APP_NAME)
        except (KeyError, TypeError, ValueError) as e:
            raise EmailServiceError(
                f"Failed to render credits purchased email: {e}", "TEMPLATE_ERROR"
            ) from e

        await self._send(to, template)
        logger.info("Credits purchased email sent", to=to, shop_name=data["shop_name"])

    async def _send(self, to: str, template: EmailTemplate) -> None:
        email_data = {
            "personalizations": [{"to": [{"email": to}], "subject": template.subject}],
            "from": {
                "email": self.settings.EMAIL_SENDER_EMAIL,
                "name": self.settings.EMAIL_SENDER_NAME,
            },
            "content": [
                {"type": "text/plain", "value": template.body},
                {"type": "text/html", "value": template.html_body},
            ],
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.EMAIL_API_URL, json=email_data, headers=self._headers()
                )
        except httpx.HTTPError as e:
            raise EmailServiceError(f"Failed to send email: {e}", "SEND_ERROR") from e

        if response.status_code >= 400:
            raise EmailServiceError(
                f"Email provider rejected the message ({response.status_code})",
                "SEND_ERROR",
                {"status_code": response.status_code, "body": response.text[:500]},
            )
