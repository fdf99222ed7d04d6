from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formatdate
from html import escape as html_escape

import boto3
import resend
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError, NoCredentialsError

from gatepass.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    """Raised when a provider is configured but delivery fails."""


def _normalize_provider(raw: str | None) -> str:
    provider = (raw or "").strip().lower()
    if not provider:
        return "resend"
    if provider in {"resend", "ses", "smtp"}:
        return provider
    raise EmailNotConfiguredError(
        f"Unsupported EMAIL_PROVIDER={provider!r}. Supported: resend (default), ses, smtp."
    )


def _require_from_email() -> str:
    if not settings.FROM_EMAIL:
        raise EmailNotConfiguredError("FROM_EMAIL is not set")
    return settings.FROM_EMAIL


def _send_email_ses(to_email: str, subject: str, body: str) -> str | None:
    region = (settings.AWS_REGION or "").strip()
    if not region:
        raise EmailNotConfiguredError("AWS_REGION is not set (required for SES)")
    from_email = _require_from_email()
    client = boto3.client("ses", region_name=region)

    try:
        res = client.send_email(
            Source=from_email,
            Destination={"ToAddresses": [to_email]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
            },
        )
    except NoCredentialsError as e:
        logger.exception("SES email failed (no AWS credentials)")
        raise EmailDeliveryError("SES email failed: AWS credentials not available") from e
    except EndpointConnectionError as e:
        logger.exception("SES email failed (endpoint connection)")
        raise EmailDeliveryError("SES email failed: could not connect to SES endpoint") from e
    except ClientError as e:
        code = (e.response or {}).get("Error", {}).get("Code", "ClientError")
        logger.exception("SES email failed (client error %s)", code)
        raise EmailDeliveryError(f"SES email failed: {code}") from e
    except BotoCoreError as e:
        logger.exception("SES email failed (botocore)")
        raise EmailDeliveryError("SES email failed") from e

    msg_id = res.get("MessageId")
    logger.info("SES email sent: msg_id=%s", msg_id)
    return msg_id


def _send_email_resend(to_email: str, subject: str, body: str) -> str | None:
    api_key = (settings.RESEND_API_KEY or "").strip()
    if not api_key:
        raise EmailNotConfiguredError("RESEND_API_KEY is not set")
    from_email = _require_from_email()

    payload = {
        "from": from_email,
        "to": [to_email],
        "subject": subject,
        "text": body,
        "html": f"<pre>{html_escape(body)}</pre>",
    }

    try:
        resend.api_key = api_key
        res = resend.Emails.send(payload)  # type: ignore[attr-defined]
    except Exception as e:  # noqa: BLE001
        raise EmailDeliveryError(f"Resend send failed: {e}") from e

    msg_id: str | None = None
    if isinstance(res, dict):
        if res.get("error"):
            raise EmailDeliveryError(f"Resend API error: {res.get('error')}")
        v = res.get("id")
        if isinstance(v, str) and v.strip():
            msg_id = v.strip()

    logger.info("Resend email sent: msg_id=%s", msg_id)
    return msg_id


def _send_email_smtp(to_email: str, subject: str, body: str) -> None:
    if not settings.SMTP_HOST:
        raise EmailNotConfiguredError("SMTP_HOST is not set")
    if not settings.SMTP_FROM_EMAIL:
        raise EmailNotConfiguredError("SMTP_FROM_EMAIL is not set")

    msg = MIMEText(body, "plain", "utf-8")
    msg["From"] = settings.SMTP_FROM_EMAIL
    msg["To"] = to_email
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
            server.ehlo()
            if settings.SMTP_USE_TLS:
                server.starttls()
                server.ehlo()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.SMTP_FROM_EMAIL, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("SMTP email failed")
        raise EmailDeliveryError("SMTP email failed") from e


def send_email(to_email: str, subject: str, body: str) -> str | None:
    """
    Send a plaintext email using the configured provider.
    - EMAIL_PROVIDER=resend (default): Resend API
    - EMAIL_PROVIDER=ses: AWS SES via boto3
    - EMAIL_PROVIDER=smtp: SMTP via stdlib
    With EMAIL_ENABLED=false nothing is sent and None is returned.
    """
    if not settings.EMAIL_ENABLED:
        logger.info("Email disabled; skipping delivery of %r", subject)
        return None

    provider = _normalize_provider(settings.EMAIL_PROVIDER)
    if provider == "smtp":
        _send_email_smtp(to_email=to_email, subject=subject, body=body)
        return None
    if provider == "ses":
        return _send_email_ses(to_email=to_email, subject=subject, body=body)
    return _send_email_resend(to_email=to_email, subject=subject, body=body)


def build_reset_link(user_id: int, raw_token: str) -> str:
    base = settings.FRONTEND_BASE_URL or ""
    return f"{base}/reset-password?id={user_id}&token={raw_token}"


def send_password_reset_email(to_email: str, user_id: int, raw_token: str) -> str | None:
    minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    body = (
        "Someone asked to reset the password for your account.\n\n"
        f"Use this link within {minutes} minutes:\n{build_reset_link(user_id, raw_token)}\n\n"
        "If it wasn't you, you can ignore this email."
    )
    return send_email(to_email=to_email, subject="Reset your password", body=body)
