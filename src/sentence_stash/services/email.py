"""Transactional e-mail through the SendGrid v3 HTTP API."""

from __future__ import annotations

import logging

import httpx

from sentence_stash.core.settings import settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
EMAIL_TIMEOUT_SECONDS = 10.0


def reset_link(token: str) -> str:
    """Frontend URL where the user enters a new password."""
    return f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}"


def _reset_body(link: str, user_name: str) -> str:
    return (
        f"Hi {user_name},\n\n"
        "Someone asked to reset the password for your SentenceStash account.\n"
        f"Open the link below within {settings.password_reset_token_ttl_minutes} minutes "
        "to choose a new one:\n\n"
        f"{link}\n\n"
        "If you did not ask for this, you can ignore this e-mail.\n"
    )


async def send_password_reset_email(to: str, token: str, user_name: str | None = None) -> bool:
    """Send the reset link, or log it when no API key is configured.

    Returns:
        False when the e-mail provider rejected or failed the request.
    """
    link = reset_link(token)
    if not settings.sendgrid_api_key:
        logger.info("E-mail is not configured; password reset link for %s: %s", to, link)
        return True

    payload = {
        "personalizations": [{"to": [{"email": to}]}],
        "from": {"email": settings.mail_from},
        "subject": "Reset your SentenceStash password",
        "content": [
            {"type": "text/plain", "value": _reset_body(link, user_name or to.split("@")[0])}
        ],
    }
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(EMAIL_TIMEOUT_SECONDS)) as client:
            response = await client.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.sendgrid_api_key}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to send password reset e-mail to %s: %s", to, exc)
        return False

    logger.info("Password reset e-mail sent to %s", to)
    return True
