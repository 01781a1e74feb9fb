"""Email dispatch over SMTP and the transactional message bodies."""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


def build_verification_url(token: str) -> str:
    return f"{settings.BACKEND_URL}/api/auth/verify-email?token={token}"


def build_reset_url(token: str) -> str:
    return f"{settings.BACKEND_URL}/api/auth/reset-password?token={token}"


def verification_email_body(verification_url: str) -> str:
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2>Email Verification</h2>
          <p>Thank you for registering with {settings.APP_NAME}. Please verify your email address by clicking the button below:</p>
          <div style="text-align: center; margin: 30px 0;">
            <a href="{verification_url}"
               style="background-color: #4CAF50; color: white; padding: 14px 28px; text-decoration: none; border-radius: 4px; display: inline-block;">
              Verify Email
            </a>
          </div>
          <p>Or copy and paste this link into your browser:</p>
          <p style="word-break: break-all; color: #666;">{verification_url}</p>
          <p style="color: #999; font-size: 12px; margin-top: 30px;">
            This link will expire in {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours. If you didn't create an account, please ignore this email.
          </p>
        </div>
    """


def password_reset_email_body(reset_url: str) -> str:
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2>Password Reset</h2>
          <p>We received a request to reset your password. Click the button below to create a new password:</p>
          <div style="text-align: center; margin: 30px 0;">
            <a href="{reset_url}"
               style="background-color: #2196F3; color: white; padding: 14px 28px; text-decoration: none; border-radius: 4px; display: inline-block;">
              Reset Password
            </a>
          </div>
          <p>Or copy and paste this link into your browser:</p>
          <p style="word-break: break-all; color: #666;">{reset_url}</p>
          <p style="color: #999; font-size: 12px; margin-top: 30px;">
            This link will expire in {settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes. If you didn't request a password reset, please ignore this email and your password will remain unchanged.
          </p>
        </div>
    """


def login_notification_body(ip_address: Optional[str], user_agent: Optional[str]) -> str:
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2>New Login Detected</h2>
          <p>A new login to your account was detected with the following details:</p>
          <ul>
            <li><strong>IP Address:</strong> {html.escape(ip_address or "unknown")}</li>
            <li><strong>Device:</strong> {html.escape(user_agent or "unknown")}</li>
            <li><strong>Time:</strong> {utcnow().strftime('%Y-%m-%d %H:%M:%S')} UTC</li>
          </ul>
          <p>If this was you, you can safely ignore this email.</p>
          <p style="color: #d32f2f;">If you don't recognize this login, please reset your password immediately and contact support.</p>
        </div>
    """


class EmailService:
    """SMTP dispatcher. Logs instead of sending when EMAIL_HOST is not configured."""

    def __init__(
        self,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        use_ssl: Optional[bool] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        self.host = settings.EMAIL_HOST if host is None else host
        self.port = port or settings.EMAIL_PORT
        self.use_ssl = settings.EMAIL_SECURE if use_ssl is None else use_ssl
        self.user = settings.EMAIL_USER if user is None else user
        self.password = settings.EMAIL_PASSWORD if password is None else password
        self.from_email = from_email or settings.EMAIL_FROM or self.user
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    @staticmethod
    def _redact(email: str) -> str:
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    def send(self, to: str, subject: str, html_body: str) -> None:
        """
        Send one HTML email

        Raises:
            EmailDeliveryError: The SMTP exchange failed
        """
        if not self.is_configured:
            logger.info("Email transport not configured; skipping send to %s (%s)", self._redact(to), subject)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    self._deliver(server, to, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._deliver(server, to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email delivery to %s failed: %s", self._redact(to), exc)
            raise EmailDeliveryError(f"Could not send '{subject}'") from exc

        logger.info("Email sent to %s (%s)", self._redact(to), subject)

    def _deliver(self, server: smtplib.SMTP, to: str, msg: MIMEMultipart) -> None:
        if self.user and self.password:
            server.login(self.user, self.password)
        server.sendmail(self.from_email, [to], msg.as_string())

    def send_verification_email(self, email: str, token: str) -> None:
        self.send(email, "Verify Your Email Address", verification_email_body(build_verification_url(token)))

    def send_password_reset_email(self, email: str, token: str) -> None:
        self.send(email, "Password Reset Request", password_reset_email_body(build_reset_url(token)))

    def send_login_notification(self, email: str, ip_address: str, user_agent: str) -> None:
        self.send(email, "New Login to Your Account", login_notification_body(ip_address, user_agent))


email_service = EmailService()
