"""
ZaloPay Helper
Handles ZaloPay v2 order creation, callback verification and status queries
"""

import hashlib
import hmac
import json
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import requests

from config import Settings, get_settings

logger = logging.getLogger(__name__)

VN_TZ = timezone(timedelta(hours=7))


def hmac_sha256(data: str, key: str) -> str:
    return hmac.new(key.encode('utf-8'), data.encode('utf-8'), hashlib.sha256).hexdigest()


def make_app_trans_id(order_id: str, now: Optional[datetime] = None) -> str:
    """yymmdd_<last 6 digits of the order id, zero padded>"""
    now = now or datetime.now(timezone.utc)
    digits = re.sub(r'\D', '', str(order_id))[-6:].rjust(6, '0')
    return f"{now.astimezone(VN_TZ).strftime('%y%m%d')}_{digits}"


class ZaloPayHelper:
    """Helper class for ZaloPay API integration"""

    APP_USER = "user"
    TIMEOUT = 30

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.app_id = self.settings.zp_app_id
        self.key1 = self.settings.zp_key1
        self.key2 = self.settings.zp_key2

    def build_order_payload(self, order_id: str, amount: float, description: Optional[str] = None) -> Dict[str, Any]:
        """Signed form payload for /v2/create"""
        payload = {
            'app_id': int(self.app_id) if str(self.app_id).isdigit() else self.app_id,
            'app_user': self.APP_USER,
            'app_time': int(time.time() * 1000),
            'amount': int(amount),
            'app_trans_id': make_app_trans_id(order_id),
            'embed_data': json.dumps({
                'redirecturl': self.settings.zp_fe_redirect_url,
                'orderId': order_id,
            }),
            'item': json.dumps([]),
            'bank_code': '',
            'description': description or f"Thanh toan don hang {order_id} qua ZaloPay",
            'callback_url': f"{self.settings.server_base_url}/api/zalopay/callback",
        }
        sign_data = '|'.join(str(payload[key]) for key in
                             ('app_id', 'app_trans_id', 'app_user', 'amount', 'app_time', 'embed_data', 'item'))
        payload['mac'] = hmac_sha256(sign_data, self.key1)
        return payload

    def create_order(self, order_id: str, amount: float, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a ZaloPay order

        Returns:
            Dict with success flag, provider data and the app_trans_id used
        """
        payload = self.build_order_payload(order_id, amount, description)
        try:
            response = requests.post(
                self.settings.zp_create_endpoint,
                data={k: str(v) for k, v in payload.items()},
                timeout=self.TIMEOUT,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("ZaloPay create order failed: %s", e)
            return {'success': False, 'error': str(e), 'app_trans_id': payload['app_trans_id']}

        if not response.ok or data.get('return_code') != 1:
            logger.warning("ZaloPay rejected order %s: %s", order_id, data.get('return_message'))
            return {
                'success': False,
                'error': data.get('return_message') or 'Không tạo được đơn ZaloPay',
                'data': data,
                'app_trans_id': payload['app_trans_id'],
            }

        return {
            'success': True,
            'data': data,
            'amount': payload['amount'],
            'app_trans_id': payload['app_trans_id'],
        }

    def verify_callback(self, data_str: str, mac: str) -> bool:
        """Callback MAC is HMAC-SHA256 over the raw data string with key2"""
        if not data_str or not mac:
            return False
        return hmac.compare_digest(hmac_sha256(data_str, self.key2), str(mac))

    def query_order(self, app_trans_id: str) -> Dict[str, Any]:
        sign_data = f"{self.app_id}|{app_trans_id}|{self.key1}"
        form = {
            'app_id': str(self.app_id),
            'app_trans_id': app_trans_id,
            'mac': hmac_sha256(sign_data, self.key1),
        }
        response = requests.post(self.settings.zp_query_endpoint, data=form, timeout=self.TIMEOUT)
        return response.json()
