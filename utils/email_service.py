"""
Email Service
Sends OTP codes and order notices via SMTP
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any

from flask import current_app, has_app_context

from config import Settings, get_settings

logger = logging.getLogger(__name__)

OTP_SUBJECTS = {
    'register': 'Mã xác thực đăng ký tài khoản',
    'forgot': 'Mã xác thực đặt lại mật khẩu',
}


class EmailService:
    """Service for sending emails with SMTP"""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.from_email = settings.smtp_user
        self.from_name = settings.smtp_from_name
        self.otp_minutes = max(settings.otp_ttl // 60, 1)
        self.enabled = bool(self.smtp_user and self.smtp_password)

        if not self.enabled:
            logger.warning("SMTP credentials not configured - email disabled")

    def _get_smtp_connection(self):
        """Create and return SMTP connection"""
        try:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=15)
            server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            return server
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP connection failed: %s", e)
            return None

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        """
        Send an email

        Returns:
            bool: True if sent successfully
        """
        if not self.enabled:
            logger.info("Email disabled - would send to %s: %s", to_email, subject)
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_body:
                msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
            msg.attach(MIMEText(html_body, 'html', 'utf-8'))

            server = self._get_smtp_connection()
            if server:
                server.sendmail(self.from_email, to_email, msg.as_string())
                server.quit()
                logger.info("Email sent to %s: %s", to_email, subject)
                return True
            return False

        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False

    def send_otp(self, to_email: str, code: str, purpose: str = 'register', name: str = '') -> bool:
        subject = OTP_SUBJECTS.get(purpose, 'Mã xác thực')
        greeting = f"Xin chào {name}," if name else "Xin chào,"
        html_body = f"""
        <div style="font-family: Arial, sans-serif; max-width: 480px; margin: auto;">
            <h2 style="color: #0f766e;">{self.from_name}</h2>
            <p>{greeting}</p>
            <p>Mã xác thực của bạn là:</p>
            <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{code}</p>
            <p>Mã có hiệu lực trong {self.otp_minutes} phút. Không chia sẻ mã này cho bất kỳ ai.</p>
        </div>
        """
        text_body = f"{greeting}\nMã xác thực của bạn là: {code} (hiệu lực {self.otp_minutes} phút)."
        return self.send_email(to_email, subject, html_body, text_body)

    def send_order_status(self, to_email: str, order: Dict[str, Any]) -> bool:
        """Plain order status notice; order is the public order dict"""
        subject = f"Đơn hàng {order.get('order_number')} - {order.get('status_label', order.get('status'))}"
        rows = "".join(
            f"<tr><td>{item.get('product_name')}</td><td>{item.get('quantity')}</td>"
            f"<td>{int(item.get('total', 0)):,}đ</td></tr>"
            for item in order.get('items', [])
        )
        html_body = f"""
        <div style="font-family: Arial, sans-serif;">
            <h3>Đơn hàng {order.get('order_number')}</h3>
            <p>Trạng thái: <b>{order.get('status_label', order.get('status'))}</b></p>
            <table cellpadding="6">{rows}</table>
            <p>Tổng thanh toán: <b>{int(order.get('total_amount', 0)):,}đ</b></p>
        </div>
        """
        return self.send_email(to_email, subject, html_body)


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the app's email service, or a process-wide singleton outside a request"""
    global _email_service
    if has_app_context() and current_app.config.get('email_service') is not None:
        return current_app.config['email_service']
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
