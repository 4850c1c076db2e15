"""
Revenue Routes
Seller revenue reports; date ranges are filtered in Mongo, buckets are grouped in Python
"""

from __future__ import annotations
from datetime import date, datetime, timedelta, timezone
import logging
from typing import Iterable, List

from flask import Blueprint, jsonify, request

from db import ensure_utc, get_collection, parse_datetime
from models.order import OrderStatus
from routes.auth import require_seller

logger = logging.getLogger(__name__)

revenue_bp = Blueprint('revenue', __name__, url_prefix='/api/revenue')

# Reports are bucketed on shop-local (Vietnam) calendar days
LOCAL_TZ = timezone(timedelta(hours=7))

PERIODS = ('day', 'week', 'month')
DEFAULT_SPANS = {'day': timedelta(days=29), 'week': timedelta(weeks=11), 'month': timedelta(days=365)}


def period_key(value: datetime, period: str) -> str:
    """Bucket label: YYYY-MM-DD, YYYY-Www (ISO week) or YYYY-MM"""
    local = ensure_utc(value).astimezone(LOCAL_TZ)
    if period == 'week':
        year, week, _ = local.isocalendar()
        return f"{year}-W{week:02d}"
    if period == 'month':
        return local.strftime('%Y-%m')
    return local.strftime('%Y-%m-%d')


def period_keys(start: datetime, end: datetime, period: str) -> List[str]:
    """Every bucket label between start and end, in order"""
    day = ensure_utc(start).astimezone(LOCAL_TZ).date()
    last = ensure_utc(end).astimezone(LOCAL_TZ).date()
    keys = []
    while day <= last:
        key = period_key(datetime(day.year, day.month, day.day, 12, tzinfo=LOCAL_TZ), period)
        if not keys or keys[-1] != key:
            keys.append(key)
        day += timedelta(days=1)
    return keys


def build_series(orders: Iterable[dict], period: str, start: datetime, end: datetime) -> List[dict]:
    """Zero-filled [{period, revenue, orders}] over the range"""
    buckets = {key: {'period': key, 'revenue': 0, 'orders': 0} for key in period_keys(start, end, period)}
    for order in orders:
        key = period_key(order['created_at'], period)
        if key in buckets:
            buckets[key]['revenue'] += order.get('total_amount', 0)
            buckets[key]['orders'] += 1
    return list(buckets.values())


def _start_of_local_day(value: datetime) -> datetime:
    local = ensure_utc(value).astimezone(LOCAL_TZ)
    return datetime(local.year, local.month, local.day, tzinfo=LOCAL_TZ).astimezone(timezone.utc)


def _status_filter(status: str | None) -> dict:
    """Cancelled orders are excluded unless explicitly requested"""
    if status and status != 'all':
        return {'status': status}
    return {'status': {'$ne': OrderStatus.CANCELLED.value}}


REPORT_FIELDS = {'created_at': 1, 'total_amount': 1, 'status': 1, 'items': 1}


def _orders_between(start: datetime | None, end: datetime, status: str | None = None) -> list:
    created = {'$lte': end}
    if start is not None:
        created['$gte'] = start
    query = {**_status_filter(status), 'created_at': created}
    return list(get_collection('orders').find(query, REPORT_FIELDS))


def _range_from_args(period: str):
    now = datetime.now(timezone.utc)
    end = parse_datetime(request.args.get('end') or request.args.get('endDate')) or now
    start = parse_datetime(request.args.get('start') or request.args.get('startDate'))
    if start is None:
        start = _start_of_local_day(end - DEFAULT_SPANS[period])
    return start, end


def _totals(orders: list) -> dict:
    return {'revenue': sum(o.get('total_amount', 0) for o in orders), 'orders': len(orders)}


@revenue_bp.route('/', methods=['GET'])
@require_seller
def revenue_series():
    try:
        period = request.args.get('period', 'day')
        if period not in PERIODS:
            return jsonify({'success': False, 'message': 'period phải là day, week hoặc month'}), 400

        start, end = _range_from_args(period)
        if start > end:
            return jsonify({'success': False, 'message': 'Ngày bắt đầu phải trước ngày kết thúc'}), 400

        orders = _orders_between(start, end, request.args.get('status'))
        return jsonify({
            'success': True,
            'message': 'OK',
            'data': build_series(orders, period, start, end),
            'summary': _totals(orders),
            'period': period,
        })

    except Exception as e:
        logger.exception("Revenue series failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@revenue_bp.route('/new-orders', methods=['GET'])
@require_seller
def new_orders():
    """Orders created since ?since (default: the last 24 hours)"""
    try:
        now = datetime.now(timezone.utc)
        since = parse_datetime(request.args.get('since')) or now - timedelta(hours=24)
        docs = list(get_collection('orders').find(
            {'created_at': {'$gte': since}},
            {'order_number': 1, 'total_amount': 1, 'status': 1, 'shipping_info.name': 1, 'created_at': 1},
        ).sort('created_at', -1))

        return jsonify({
            'success': True,
            'message': 'OK',
            'count': len(docs),
            'data': [{
                '_id': str(doc['_id']),
                'order_number': doc.get('order_number'),
                'total_amount': doc.get('total_amount', 0),
                'status': doc.get('status'),
                'customer_name': (doc.get('shipping_info') or {}).get('name'),
                'created_at': ensure_utc(doc['created_at']).isoformat(),
            } for doc in docs],
        })

    except Exception as e:
        logger.exception("New orders failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@revenue_bp.route('/summary', methods=['GET'])
@require_seller
def revenue_summary():
    """Today, this ISO week, this month and new orders in the last 24 hours"""
    try:
        now = datetime.now(timezone.utc)
        today_start = _start_of_local_day(now)
        local_today: date = now.astimezone(LOCAL_TZ).date()
        week_start = today_start - timedelta(days=local_today.isoweekday() - 1)
        month_start = datetime(local_today.year, local_today.month, 1, tzinfo=LOCAL_TZ).astimezone(timezone.utc)

        orders = _orders_between(min(week_start, month_start), now)
        recent_count = get_collection('orders').count_documents(
            {'created_at': {'$gte': now - timedelta(hours=24)}})

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': {
                'today': _totals([o for o in orders if ensure_utc(o['created_at']) >= today_start]),
                'week': _totals([o for o in orders if ensure_utc(o['created_at']) >= week_start]),
                'month': _totals([o for o in orders if ensure_utc(o['created_at']) >= month_start]),
                'newOrders': recent_count,
            }
        })

    except Exception as e:
        logger.exception("Revenue summary failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@revenue_bp.route('/top-products', methods=['GET'])
@require_seller
def top_products():
    try:
        try:
            limit = min(max(int(request.args.get('limit', 10)), 1), 100)
        except ValueError:
            limit = 10
        sort_by = request.args.get('sortBy', 'quantity')
        if sort_by not in ('quantity', 'revenue'):
            return jsonify({'success': False, 'message': 'sortBy phải là quantity hoặc revenue'}), 400

        start, end = _range_from_args('month')
        if not request.args.get('start') and not request.args.get('startDate'):
            start = None

        stats = {}
        for order in _orders_between(start, end, request.args.get('status')):
            for item in order.get('items', []):
                entry = stats.setdefault(item['product_id'], {
                    'product_id': item['product_id'],
                    'product_name': item.get('product_name'),
                    'product_image': item.get('product_image'),
                    'quantity': 0,
                    'revenue': 0,
                    'orders': 0,
                })
                entry['quantity'] += int(item.get('quantity', 0))
                entry['revenue'] += item.get('total', 0)
                entry['orders'] += 1

        ranked = sorted(stats.values(), key=lambda e: e[sort_by], reverse=True)
        return jsonify({'success': True, 'message': 'OK', 'data': ranked[:limit]})

    except Exception as e:
        logger.exception("Top products failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
