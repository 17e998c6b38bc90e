from __future__ import annotations

import smtplib
from email.message import EmailMessage
from urllib.parse import quote

from flask import current_app

from trendbits.errors import EmailDeliveryError, ServiceNotConfiguredError

_RESET_SUBJECT = "Password Reset Request"

_RESET_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 480px; margin: 0 auto; border: 1px solid #eee; border-radius: 8px; padding: 24px; background: #fafbfc;">
  <h2 style="color: #333;">Password Reset Request</h2>
  <p>Hello,</p>
  <p>You requested a password reset. Click the button below to reset your password:</p>
  <a href="{link}" style="display: inline-block; padding: 12px 24px; background: #007bff; color: #fff; text-decoration: none; border-radius: 4px; font-weight: bold;">Reset Password</a>
  <p style="margin-top: 24px; color: #888; font-size: 13px;">This link expires in {minutes} minutes. If you did not request this, please ignore this email.</p>
  <hr style="margin: 32px 0; border: none; border-top: 1px solid #eee;" />
  <p style="color: #888; font-size: 13px;">If the button above does not work, copy and paste this link into your browser:</p>
  <p style="word-break: break-all; color: #007bff; font-size: 13px;">{link}</p>
</div>
"""


def password_reset_link(token: str) -> str:
    base = str(current_app.config.get("WEBAPP_URL", "")).rstrip("/")
    return f"{base}/auth/request-password/verify?token={quote(token)}"


def build_password_reset_message(*, to_email: str, token: str, sender: str) -> EmailMessage:
    link = password_reset_link(token)
    minutes = int(current_app.config.get("RESET_TOKEN_EXPIRY_MINUTES", 60))
    msg = EmailMessage()
    msg["Subject"] = _RESET_SUBJECT
    msg["From"] = sender
    msg["To"] = to_email
    msg.set_content(
        "\n".join(
            [
                "You requested a password reset. Click the link below to reset your password:",
                link,
                f"The link expires in {minutes} minutes.",
                "If you did not request this, please ignore this email.",
            ]
        )
    )
    msg.add_alternative(_RESET_HTML.format(link=link, minutes=minutes), subtype="html")
    return msg


def _send(msg: EmailMessage) -> None:
    cfg = current_app.config
    host = cfg.get("SMTP_HOST")
    port = int(cfg.get("SMTP_PORT", 587))
    user = cfg.get("SMTP_USER")
    password = cfg.get("SMTP_PASSWORD")
    try:
        with smtplib.SMTP(host, port, timeout=20) as server:
            if cfg.get("SMTP_USE_TLS", True):
                server.starttls()
            if user:
                server.login(user, password or "")
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.error("SMTP delivery to %s failed: %s", msg["To"], exc)
        raise EmailDeliveryError() from exc


def send_password_reset_email(*, to_email: str, token: str) -> None:
    if current_app.testing:
        return
    sender = current_app.config.get("APP_EMAIL") or current_app.config.get("SMTP_USER")
    if not sender or not current_app.config.get("SMTP_HOST"):
        current_app.logger.error("Password reset email skipped (missing SMTP_HOST/APP_EMAIL).")
        raise ServiceNotConfiguredError("Email delivery is not configured.")
    _send(build_password_reset_message(to_email=to_email, token=token, sender=sender))
