"""
VNPay Helper
Builds signed VNPay payment URLs and verifies return signatures
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from urllib.parse import quote

from config import Settings, get_settings

VN_TZ = timezone(timedelta(hours=7))


def format_vnp_date(value: datetime) -> str:
    """YYYYMMDDHHmmss in Vietnam local time"""
    return value.astimezone(VN_TZ).strftime('%Y%m%d%H%M%S')


# Characters encodeURIComponent leaves alone
SAFE_CHARS = "!~*'()"


def encode_params(params: Dict[str, Any]) -> str:
    """Sorted key=value pairs, percent-encoded with spaces as '+'"""
    return '&'.join(
        f"{key}={quote(str(params[key]), safe=SAFE_CHARS).replace('%20', '+')}"
        for key in sorted(params)
    )


class VNPayHelper:
    """Helper class for VNPay API integration"""

    VERSION = "2.1.0"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tmn_code = self.settings.vnp_tmn_code
        self.hash_secret = self.settings.vnp_hash_secret
        self.pay_url = self.settings.vnp_url
        self.return_url = self.settings.vnp_return_url

    def sign(self, sign_data: str) -> str:
        if not self.hash_secret:
            raise ValueError("VNPay hash secret not configured")
        return hmac.new(self.hash_secret.encode('utf-8'), sign_data.encode('utf-8'), hashlib.sha512).hexdigest()

    def build_payment_url(
        self,
        order_ref: str,
        amount: float,
        ip_addr: str = "127.0.0.1",
        bank_code: Optional[str] = None,
        language: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a VNPay payment URL

        Args:
            order_ref: order reference echoed back as vnp_TxnRef
            amount: amount in VND (VNPay expects it multiplied by 100)
        """
        now = now or datetime.now(timezone.utc)
        params = {
            'vnp_Version': self.VERSION,
            'vnp_Command': 'pay',
            'vnp_TmnCode': self.tmn_code,
            'vnp_Amount': int(round(float(amount) * 100)),
            'vnp_CurrCode': 'VND',
            'vnp_TxnRef': order_ref,
            'vnp_OrderInfo': f"Thanh toan don hang {order_ref}",
            'vnp_OrderType': 'other',
            'vnp_Locale': language or 'vn',
            'vnp_ReturnUrl': self.return_url,
            'vnp_IpAddr': ip_addr or '127.0.0.1',
            'vnp_CreateDate': format_vnp_date(now),
            'vnp_ExpireDate': format_vnp_date(now + timedelta(days=1)),
        }
        if bank_code:
            params['vnp_BankCode'] = bank_code

        sign_data = encode_params(params)
        return f"{self.pay_url}?{sign_data}&vnp_SecureHash={self.sign(sign_data)}"

    def verify_return(self, query: Dict[str, Any]) -> bool:
        """Check vnp_SecureHash over every other vnp_ parameter"""
        data = dict(query)
        secure_hash = data.pop('vnp_SecureHash', None)
        data.pop('vnp_SecureHashType', None)
        if not secure_hash:
            return False
        expected = self.sign(encode_params(data))
        return hmac.compare_digest(expected.lower(), str(secure_hash).lower())
