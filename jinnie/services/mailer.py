# jinnie/services/mailer.py
"""
Sign-in link delivery. With SMTP credentials configured the link is mailed;
without them (local development, tests) it is only logged and kept in `outbox`.
"""
from __future__ import annotations

import smtplib
from collections import deque
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Deque

from jinnie.config import settings
from jinnie.core.logger import get_logger

logger = get_logger(__name__)

OUTBOX_SIZE = 50


class MailError(Exception):
    pass


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str


# most recent messages handed to the log-only transport; older ones fall off
outbox: Deque[SentMessage] = deque(maxlen=OUTBOX_SIZE)


def _effective_from() -> str:
    if "gmail" in (settings.SMTP_SERVER or "").lower() and settings.EMAIL_USER:
        return settings.EMAIL_USER
    return settings.EMAIL_FROM or settings.EMAIL_USER


def send_text_email(to_email: str, subject: str, body: str) -> None:
    if not (settings.EMAIL_USER and settings.EMAIL_PASSWORD):
        logger.info("SMTP not configured; sign-in mail for %s logged only", to_email)
        outbox.append(SentMessage(to=to_email, subject=subject, body=body))
        return

    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = _effective_from()
    msg["To"] = to_email

    try:
        with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT) as server:
            server.starttls()
            server.login(settings.EMAIL_USER, settings.EMAIL_PASSWORD)
            server.sendmail(msg["From"], [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send mail to %s: %s", to_email, e)
        raise MailError(str(e)) from e


def send_sign_in_link(to_email: str, link: str) -> None:
    body = (
        "Use the link below to confirm your email and finish reserving on Jinnie.\n\n"
        f"{link}\n\n"
        "If you did not ask for this, you can ignore this message."
    )
    send_text_email(to_email, "Confirm your email for Jinnie", body)
