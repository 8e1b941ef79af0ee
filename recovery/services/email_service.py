"""
Email Service

Delivers password reset codes. Three providers share one interface:
console (development), SMTP and the Resend HTTP API.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import httpx

from recovery.core.config import Settings, settings
from recovery.core.http_client import post_with_retry


logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of handing a code to the email provider."""
    success: bool
    reason: Optional[str] = None
    message_id: Optional[str] = None


def get_password_reset_email_html(otp_code: str, expires_at: datetime) -> str:
    """Generate HTML content for password reset email."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"></head>
    <body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background-color: #f5f5f5;">
        <div style="max-width: 600px; margin: 40px auto; background: white; border-radius: 12px; padding: 40px;">
            <h1 style="color: #2563eb;">Password Reset</h1>
            <p>We received a request to reset your password. Use the code below to reset it:</p>

            <div style="text-align: center; margin: 30px 0; font-size: 36px; font-weight: bold; letter-spacing: 8px; font-family: monospace;">
                {otp_code}
            </div>

            <p>This code will expire in <strong>{settings.OTP_EXPIRE_MINUTES} minutes</strong>
            ({expires_at:%H:%M} UTC). You have <strong>{settings.OTP_MAX_ATTEMPTS} attempts</strong> to enter it.</p>

            <p>If you didn't request a password reset, please ignore this email. Your account is still secure.</p>
        </div>
    </body>
    </html>
    """


def get_password_reset_email_text(otp_code: str, expires_at: datetime) -> str:
    """Generate plain text content for password reset email."""
    return f"""
We received a request to reset your password. Use the code below to reset it:

Your reset code: {otp_code}

This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes ({expires_at:%H:%M} UTC).
You have {settings.OTP_MAX_ATTEMPTS} attempts to enter it.

If you didn't request a password reset, please ignore this email. Your account is still secure.
    """


def password_reset_subject(otp_code: str) -> str:
    return f"Your password reset code - {otp_code}"


class DeliveryGateway(ABC):
    """Outbound channel for one-time codes."""

    @abstractmethod
    async def send(self, account_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        """
        Send `code` to the account's recovery address.

        Provider errors are reported in the result, not raised.
        """


class ConsoleDeliveryGateway(DeliveryGateway):
    """Development gateway: logs the code instead of sending it."""

    async def send(self, account_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        logger.info(f"[DEV MODE] Password reset OTP for {account_id}: {code} (expires {expires_at.isoformat()})")
        return DeliveryResult(success=True)


class SmtpDeliveryGateway(DeliveryGateway):
    """Sends multipart text/HTML mail through an SMTP relay with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        timeout: float,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.from_name = from_name
        self.timeout = timeout

    def build_message(self, to_email: str, code: str, expires_at: datetime) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = password_reset_subject(code)
        msg["From"] = f"{self.from_name} <{self.from_address}>"
        msg["To"] = to_email

        msg.attach(MIMEText(get_password_reset_email_text(code, expires_at), "plain"))
        msg.attach(MIMEText(get_password_reset_email_html(code, expires_at), "html"))
        return msg

    def _send_blocking(self, to_email: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.from_address, to_email, msg.as_string())

    async def send(self, account_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        msg = self.build_message(account_id, code, expires_at)
        try:
            await asyncio.to_thread(self._send_blocking, account_id, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send password reset email to {account_id}: {e}")
            return DeliveryResult(success=False, reason=str(e) or type(e).__name__)

        logger.info(f"Password reset email sent to {account_id}")
        return DeliveryResult(success=True)


class ResendDeliveryGateway(DeliveryGateway):
    """Sends mail through the Resend transactional email API."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        from_address: str,
        from_name: str,
        timeout: float,
        max_retries: int = 1,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.from_address = from_address
        self.from_name = from_name
        self.timeout = timeout
        self.max_retries = max_retries

    async def send(self, account_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        payload = {
            "from": f"{self.from_name} <{self.from_address}>",
            "to": [account_id],
            "subject": password_reset_subject(code),
            "html": get_password_reset_email_html(code, expires_at),
            "text": get_password_reset_email_text(code, expires_at),
        }
        try:
            response = await post_with_retry(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        except httpx.HTTPError as e:
            logger.error(f"Email API request for {account_id} failed: {e}")
            return DeliveryResult(success=False, reason=str(e) or type(e).__name__)

        if response.status_code >= 400:
            logger.error(f"Email API rejected message for {account_id}: HTTP {response.status_code}")
            return DeliveryResult(success=False, reason=f"HTTP {response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info(f"Password reset email sent to {account_id} (id={message_id})")
        return DeliveryResult(success=True, message_id=message_id)


def build_delivery_gateway(config: Settings = settings) -> DeliveryGateway:
    """Create the gateway selected by EMAIL_PROVIDER."""
    provider = config.EMAIL_PROVIDER.lower()
    if provider == "console":
        return ConsoleDeliveryGateway()
    if provider == "smtp":
        return SmtpDeliveryGateway(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            from_address=config.EMAIL_FROM_ADDRESS,
            from_name=config.EMAIL_FROM_NAME,
            timeout=config.EMAIL_DELIVERY_TIMEOUT_SECONDS,
        )
    if provider == "resend":
        return ResendDeliveryGateway(
            api_key=config.RESEND_API_KEY,
            api_url=config.RESEND_API_URL,
            from_address=config.EMAIL_FROM_ADDRESS,
            from_name=config.EMAIL_FROM_NAME,
            timeout=config.EMAIL_DELIVERY_TIMEOUT_SECONDS,
            max_retries=config.EMAIL_DELIVERY_RETRIES,
        )
    raise ValueError(f"Unknown EMAIL_PROVIDER: {config.EMAIL_PROVIDER}")
