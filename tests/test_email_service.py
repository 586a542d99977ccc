from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from inkwell.auth.email_service import (
    EmailDeliveryError,
    LogEmailNotifier,
    ResendEmailNotifier,
    build_email_notifier,
)
from inkwell.core.config import EmailConfig


@dataclass
class _Response:
    status_code: int


@dataclass
class _Session:
    status_code: int = 200
    error: Exception | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    def post(self, url: str, **kwargs: Any) -> _Response:
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return _Response(self.status_code)


def _config() -> EmailConfig:
    return EmailConfig(backend="resend", resend_api_key="re_test", from_email="Inkwell <otp@inkwell.dev>")


def test_resend_notifier_posts_otp_message() -> None:
    session = _Session()
    notifier = ResendEmailNotifier(_config(), otp_ttl_seconds=600, session=session)

    notifier.send_otp_email("ann@example.com", "042424", "Ann <b>")

    call = session.calls[0]
    assert call["url"] == "https://api.resend.com/emails"
    assert call["headers"] == {"Authorization": "Bearer re_test"}
    assert call["json"]["to"] == ["ann@example.com"]
    assert call["json"]["from"] == "Inkwell <otp@inkwell.dev>"
    assert "042424" in call["json"]["text"]
    assert "10 minutes" in call["json"]["text"]
    assert "Ann &lt;b&gt;" in call["json"]["html"]


def test_resend_notifier_uses_reset_subject() -> None:
    session = _Session()
    notifier = ResendEmailNotifier(_config(), session=session)

    notifier.send_password_reset_otp_email("ann@example.com", "123456")

    assert "password reset" in session.calls[0]["json"]["subject"]


def test_resend_notifier_raises_on_provider_rejection() -> None:
    notifier = ResendEmailNotifier(_config(), session=_Session(status_code=422))

    with pytest.raises(EmailDeliveryError):
        notifier.send_otp_email("ann@example.com", "123456")


def test_resend_notifier_raises_on_transport_error() -> None:
    session = _Session(error=requests.ConnectionError("dns"))
    notifier = ResendEmailNotifier(_config(), session=session)

    with pytest.raises(EmailDeliveryError):
        notifier.send_otp_email("ann@example.com", "123456")


def test_build_email_notifier_selects_backend() -> None:
    assert isinstance(build_email_notifier(EmailConfig(backend="log"), otp_ttl_seconds=600), LogEmailNotifier)
    assert isinstance(build_email_notifier(_config(), otp_ttl_seconds=600), ResendEmailNotifier)
    with pytest.raises(ValueError):
        build_email_notifier(EmailConfig(backend="resend"), otp_ttl_seconds=600)
    with pytest.raises(ValueError):
        build_email_notifier(EmailConfig(backend="carrier-pigeon"), otp_ttl_seconds=600)
