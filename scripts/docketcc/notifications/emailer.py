"""
Transactional email via the Resend HTTP API.
"""

import logging
from typing import Optional

import requests

from ..exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM = "DocketCC <notifications@docketcc.com>"
REQUEST_TIMEOUT = 30


class ResendEmailer:
    """Sends HTML + text emails through Resend."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str = DEFAULT_FROM,
        api_url: str = RESEND_API_URL,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self.session = requests.Session()

    @classmethod
    def from_config(cls, config) -> "ResendEmailer":
        return cls(
            api_key=config.secret("resend_api_key"),
            from_address=config.get("delivery.from_address", DEFAULT_FROM),
            api_url=config.get("delivery.api_url", RESEND_API_URL),
            timeout=config.get("delivery.timeout", REQUEST_TIMEOUT),
        )

    def send(self, to: str, subject: str, html: str, text: str) -> str:
        """
        Send one email.

        Returns:
            Provider message id.

        Raises:
            EmailDeliveryError: Missing key, transport failure or rejection.
        """
        if not self.api_key:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        try:
            response = self.session.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.from_address, "to": [to], "subject": subject, "html": html, "text": text},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise EmailDeliveryError(f"Email request failed for {to}: {e}")

        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"Resend rejected email to {to}: HTTP {response.status_code} {response.text[:200]}"
            )

        try:
            message_id = response.json().get("id", "")
        except ValueError:
            message_id = ""
        logger.info("Email sent to %s (%s)", to, message_id or "no id")
        return message_id
