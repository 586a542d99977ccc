"""Outbound OTP emails for signup confirmation and password reset."""

from __future__ import annotations

import html
import logging
from typing import Protocol

import requests

from inkwell.core.config import EmailConfig

LOGGER = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when an email could not be handed to the provider."""


class EmailNotifier(Protocol):
    """Capability used by the auth service to deliver one-time codes."""

    def send_otp_email(self, email: str, otp: str, name: str | None = None) -> None:
        """Send a signup confirmation code or raise."""

    def send_password_reset_otp_email(
        self, email: str, otp: str, name: str | None = None
    ) -> None:
        """Send a password reset code or raise."""


def _render_otp_message(
    *, app_name: str, heading: str, intro: str, otp: str, name: str | None, ttl_minutes: int
) -> tuple[str, str]:
    """Return ``(html, text)`` bodies for an OTP email."""
    greeting = f"Hi {name}," if name else "Hi,"
    text = (
        f"{greeting}\n\n{intro}\n\n"
        f"Your code: {otp}\n\n"
        f"The code expires in {ttl_minutes} minutes. "
        "If you did not request it, you can ignore this email.\n\n"
        f"The {app_name} Team"
    )
    body = f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
          <h1 style="color: #2563eb;">{html.escape(heading)}</h1>
          <p>{html.escape(greeting)}</p>
          <p>{html.escape(intro)}</p>
          <p style="font-size: 32px; letter-spacing: 8px; font-weight: bold;">{otp}</p>
          <p>The code expires in {ttl_minutes} minutes.
             If you did not request it, you can ignore this email.</p>
          <p>The {html.escape(app_name)} Team</p>
        </div>
      </body>
    </html>
    """
    return body, text


class ResendEmailNotifier:
    """Deliver OTP emails through the Resend HTTP API."""

    def __init__(
        self,
        config: EmailConfig,
        *,
        otp_ttl_seconds: int = 600,
        session: requests.Session | None = None,
    ) -> None:
        if not config.resend_api_key:
            raise ValueError("RESEND_API_KEY is required for the resend email backend")
        self._config = config
        self._ttl_minutes = max(1, otp_ttl_seconds // 60)
        self._session = session or requests.Session()

    def send_otp_email(self, email: str, otp: str, name: str | None = None) -> None:
        app_name = self._config.app_name
        body, text = _render_otp_message(
            app_name=app_name,
            heading=f"Verify your {app_name} account",
            intro="Use the code below to finish creating your account.",
            otp=otp,
            name=name,
            ttl_minutes=self._ttl_minutes,
        )
        self._send(email, f"Your {app_name} verification code", body, text)

    def send_password_reset_otp_email(
        self, email: str, otp: str, name: str | None = None
    ) -> None:
        app_name = self._config.app_name
        body, text = _render_otp_message(
            app_name=app_name,
            heading="Reset your password",
            intro="Use the code below to choose a new password.",
            otp=otp,
            name=name,
            ttl_minutes=self._ttl_minutes,
        )
        self._send(email, f"Your {app_name} password reset code", body, text)

    def _send(self, to: str, subject: str, body: str, text: str) -> None:
        try:
            response = self._session.post(
                self._config.api_url,
                json={
                    "from": self._config.from_email,
                    "to": [to],
                    "subject": subject,
                    "html": body,
                    "text": text,
                },
                headers={"Authorization": f"Bearer {self._config.resend_api_key}"},
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as exc:
            LOGGER.error("email_send_failed", extra={"email": to, "reason": str(exc)})
            raise EmailDeliveryError("Email provider is unreachable") from exc

        if response.status_code >= 400:
            LOGGER.error(
                "email_send_failed",
                extra={"email": to, "status_code": response.status_code},
            )
            raise EmailDeliveryError(f"Email provider rejected message ({response.status_code})")

        LOGGER.info("email_sent", extra={"email": to, "status_code": response.status_code})


class LogEmailNotifier:
    """Development backend that writes codes to the log instead of sending them."""

    def send_otp_email(self, email: str, otp: str, name: str | None = None) -> None:
        LOGGER.warning("dev_email_otp %s", otp, extra={"email": email, "purpose": "registration"})

    def send_password_reset_otp_email(
        self, email: str, otp: str, name: str | None = None
    ) -> None:
        LOGGER.warning(
            "dev_email_otp %s", otp, extra={"email": email, "purpose": "password_reset"}
        )


def build_email_notifier(config: EmailConfig, *, otp_ttl_seconds: int) -> EmailNotifier:
    """Select the email backend named in configuration."""
    if config.backend == "resend":
        return ResendEmailNotifier(config, otp_ttl_seconds=otp_ttl_seconds)
    if config.backend == "log":
        LOGGER.warning("email_backend_log", extra={"reason": "OTP codes are logged, not sent"})
        return LogEmailNotifier()
    raise ValueError(f"Unknown email backend: {config.backend}")
