"""
Transactional email through Sendinblue (Brevo) templates.
"""

import logging
from typing import Dict

import httpx

from core.config import settings

logger = logging.getLogger(__name__)

SENDINBLUE_URL = "https://api.sendinblue.com/v3/smtp/email"


class EmailSender:
    """Sends a named template with a params context."""

    def __init__(
        self, api_key: str = None, templates: Dict[str, int] = None,
        sender: str = None, sender_name: str = None,
        url: str = SENDINBLUE_URL, transport: httpx.BaseTransport = None,
    ):
        self.api_key = api_key if api_key is not None else settings.sendinblue_api_key
        self.templates = templates if templates is not None else settings.email_templates
        self.sender = {
            "email": sender or settings.email_sender,
            "name": sender_name or settings.email_sender_name,
        }
        self.url = url
        self.timeout = 30.0
        self.transport = transport

    def send(self, template: str, to_email: str, to_name: str, params: dict) -> str:
        """Send and return the provider message id."""
        if template not in self.templates:
            raise KeyError(f"Unknown email template: {template}")

        payload = {
            "sender": self.sender,
            "to": [{"email": to_email, "name": to_name}],
            "templateId": self.templates[template],
            "params": params,
        }
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            resp = client.post(self.url, json=payload, headers={"api-key": self.api_key})
            resp.raise_for_status()
            message_id = resp.json().get("messageId", "")

        logger.info(f"📧 '{template}' email sent to {to_email}")
        return message_id
