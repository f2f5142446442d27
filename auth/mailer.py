"""
auth/mailer.py -- Outbound delivery of one-time verification codes.

SmtpMailer sends the OTP email over SMTP (STARTTLS or implicit TLS). Any
transport failure surfaces as UpstreamFailure -- there is no automatic retry;
the caller repeats the whole register/resend call, and the code already
written to the store stays valid until it expires.

When SMTP_HOST is not configured:
  - DEBUG=true: the message is written to the log instead (console mailer
    for local development).
  - otherwise: UpstreamFailure. A production deployment must not report
    "code sent" when nothing was sent.

Layer rule: no imports from api/ or realtime/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from auth.errors import UpstreamFailure

logger = logging.getLogger("samaj.mailer")


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpMailer:
    """Deliver OTP emails via SMTP."""

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "VS Samaj App",
        ttl_seconds: int = 120,
        debug: bool = False,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.ttl_seconds = ttl_seconds
        self.debug = debug

    @classmethod
    def from_settings(cls, settings) -> "SmtpMailer":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
            ttl_seconds=settings.otp_ttl_seconds,
            debug=settings.debug,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_otp(self, to_email: str, code: str) -> None:
        """Send the verification code to `to_email`. Raises UpstreamFailure."""
        minutes = max(1, self.ttl_seconds // 60)
        subject = f"Your OTP Verification - {self.from_name}"
        text_body = (
            f"Hello,\n\nThank you for registering with {self.from_name}. "
            f"Your verification code is {code}.\n\n"
            f"This code will expire in {minutes} minutes. "
            "If you didn't request this verification, please ignore this email.\n"
        )
        html_body = _OTP_HTML.format(
            app_name=self.from_name,
            code=code,
            minutes=minutes,
            year=datetime.now(timezone.utc).year,
        )
        self._send(to_email, subject, html_body, text_body)

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        if not self.is_configured:
            if self.debug:
                logger.info(
                    "Email delivery not configured; console mailer to=%s subject=%r body=%r",
                    redact_email(to_email),
                    subject,
                    text_body,
                )
                return
            logger.error("Email delivery not configured; refusing to send to %s", redact_email(to_email))
            raise UpstreamFailure("Email delivery is not configured.")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            # ssl.SSLError and TimeoutError are both OSError subclasses.
            logger.error(
                "OTP email to %s failed: %s %s",
                redact_email(to_email),
                type(exc).__name__,
                exc,
            )
            raise UpstreamFailure("Could not deliver the verification email.") from exc
        logger.info("OTP email sent to %s", redact_email(to_email))


_OTP_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; background-color: #f9f9f9; \
padding: 30px; border-radius: 12px; border: 1px solid #e0e0e0;">
  <h2 style="text-align: center; color: #000; margin-bottom: 10px;">{app_name}</h2>
  <p style="text-align: center; color: #555; margin: 0 0 30px;">OTP Verification</p>
  <p style="font-size: 15px; color: #333;">Hello,</p>
  <p style="font-size: 15px; color: #333;">Thank you for registering with <b>{app_name}</b>. \
Please use the following OTP to verify your email address:</p>
  <div style="background-color: #000; color: #fff; padding: 20px; text-align: center; margin: 25px 0; \
border-radius: 8px;">
    <h1 style="font-size: 34px; letter-spacing: 8px; margin: 0;">{code}</h1>
  </div>
  <p style="font-size: 14px; color: #555;">This OTP will expire in <b>{minutes} minutes</b>.</p>
  <p style="font-size: 14px; color: #555;">If you didn't request this verification, please ignore this email.</p>
  <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
  <p style="font-size: 13px; color: #888; text-align: center;">&copy; {year} {app_name}. All rights reserved.</p>
</div>
"""
