# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Email rendering and delivery.

Delivery goes through the Resend HTTP API by default, SMTP when configured
that way, or the log for local development (``email_backend=console``).
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from digitalmarket_server.config import Settings, settings as default_settings
from digitalmarket_server.errors import ConfigurationError, DeliveryError
from digitalmarket_server.i18n import translate

logger = logging.getLogger(__name__)

BACKENDS = ("resend", "smtp", "console")

templates_dir = Path(__file__).resolve().parent.parent / "templates" / "email"
templates = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class RenderedEmail:
    subject: str
    text: str
    html: str


def _render(name: str, subject_key: str, lang: str, **context) -> RenderedEmail:
    context = {"lang": lang, "app_name": default_settings.app_name, **context}
    return RenderedEmail(
        subject=translate(subject_key, lang, app_name=default_settings.app_name),
        text=templates.get_template(f"{name}.txt").render(**context),
        html=templates.get_template(f"{name}.html").render(**context),
    )


def render_reset_code_email(code: str, lang: str, ttl_seconds: int) -> RenderedEmail:
    """Reset code email; the code is shown on its own for copy-paste."""
    return _render("reset_code", "subject_reset_code", lang, code=code, ttl_minutes=max(1, ttl_seconds // 60))


def render_welcome_email(username: str, lang: str) -> RenderedEmail:
    return _render("welcome", "subject_welcome", lang, username=username)


def render_new_user_notification(username: str, email: str, lang: str) -> RenderedEmail:
    return _render("new_user", "subject_new_user", lang, username=username, email=email)


class EmailSender:
    """Sends rendered emails with the configured backend."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self.transport = transport

    @property
    def backend(self) -> str:
        return (self.config.email_backend or "").strip().lower()

    def ensure_configured(self) -> None:
        """Raise ConfigurationError if the backend cannot send. Sends nothing."""
        backend = self.backend
        if backend not in BACKENDS:
            logger.error("Unknown email backend %r", self.config.email_backend)
            raise ConfigurationError()
        if backend == "resend" and not self.config.resend_api_key:
            logger.error("RESEND_API_KEY is not set")
            raise ConfigurationError()
        if backend == "smtp" and not (self.config.smtp_host and self.config.smtp_user):
            logger.error("SMTP_HOST / SMTP_USER are not set")
            raise ConfigurationError()

    async def send(self, to: str | list[str], message: RenderedEmail) -> None:
        """Deliver ``message``. Raises ConfigurationError or DeliveryError."""
        self.ensure_configured()
        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            return
        if self.backend == "console":
            logger.info(
                "Email (console backend): To=%s Subject=%s Body=%s",
                ", ".join(recipients), message.subject, message.text[:200],
            )
            return
        if self.backend == "resend":
            await self._send_resend(recipients, message)
        else:
            await self._send_smtp(recipients, message)
        logger.info("Email sent: To=%s Subject=%s", ", ".join(recipients), message.subject)

    async def _send_resend(self, recipients: list[str], message: RenderedEmail) -> None:
        payload = {
            "from": self.config.email_from,
            "to": recipients,
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        headers = {"Authorization": f"Bearer {self.config.resend_api_key}"}
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                r = await client.post(self.config.resend_api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Email API request failed: %s", e)
            raise DeliveryError() from e
        if not r.is_success:
            logger.error("Email API returned %s: %s", r.status_code, r.text[:200])
            raise DeliveryError()

    def _build_mime(self, recipients: list[str], message: RenderedEmail) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.config.email_from
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def _smtp_sendmail(self, recipients: list[str], msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(self.config.smtp_user, self.config.smtp_password or "")
            server.sendmail(self.config.email_from, recipients, msg.as_string())

    async def _send_smtp(self, recipients: list[str], message: RenderedEmail) -> None:
        msg = self._build_mime(recipients, message)
        try:
            await asyncio.to_thread(self._smtp_sendmail, recipients, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery failed: %s", e)
            raise DeliveryError() from e


def get_email_sender() -> EmailSender:
    """FastAPI dependency: sender built from application settings."""
    return EmailSender()
