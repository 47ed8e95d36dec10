"""
Email Service
=============

Sends password reset links.
"""

import html
import logging
import os
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending account emails.

    Uses SMTP to send emails. Configure with environment variables:
    - SMTP_HOST: SMTP server hostname (default: smtp.gmail.com)
    - SMTP_PORT: SMTP server port (default: 587, 465 means implicit TLS)
    - SMTP_USER: SMTP username/email
    - SMTP_PASSWORD: SMTP password or app password
    - FROM_EMAIL: Sender address (default: SMTP_USER)
    """

    def __init__(self):
        """Initialize email service with configuration from environment."""
        self.smtp_host = os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.from_email = os.getenv("FROM_EMAIL", self.smtp_user or "no-reply@watermonitor.local")

        # Check if email is configured
        self.is_configured = bool(self.smtp_user and self.smtp_password)
        if not self.is_configured:
            logger.warning(
                "Email service not configured. Set SMTP_USER and SMTP_PASSWORD "
                "environment variables to enable password reset emails."
            )

    def _send(self, msg: MIMEMultipart):
        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port) as server:
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
            return

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    def send_password_reset(
        self,
        to_email: str,
        full_name: str,
        reset_link: str,
        ttl_minutes: int
    ) -> bool:
        """
        Email a password reset link.

        Args:
            to_email: Recipient address
            full_name: Recipient name for the greeting
            reset_link: The full reset URL (contains the token)
            ttl_minutes: How long the link stays valid

        Returns:
            True if email was sent successfully, False otherwise
        """
        if not self.is_configured:
            # Local development: the link goes to the log instead
            logger.info(f"[Password Reset] Email not configured, reset link for {to_email}: {reset_link}")
            return False

        name = full_name or "User"

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = "Reset your Water Monitor password"
            msg["From"] = self.from_email
            msg["To"] = to_email

            text_content = f"""Hello {name},

Use this link to reset your password:
{reset_link}

This link expires in {ttl_minutes} minutes.
"""

            safe_name = html.escape(name)
            safe_link = html.escape(reset_link, quote=True)

            html_content = f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <p>Hello {safe_name},</p>
    <p>Use this link to reset your password:</p>
    <p><a href="{safe_link}">Reset Password</a></p>
    <p>This link expires in {ttl_minutes} minutes.</p>
</body>
</html>
"""

            msg.attach(MIMEText(text_content, "plain"))
            msg.attach(MIMEText(html_content, "html"))

            self._send(msg)

            logger.info(f"Password reset email sent to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send password reset email: {type(e).__name__}: {e}")
            return False
