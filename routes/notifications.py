"""
Notification Routes
"""

from __future__ import annotations
import logging

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from extensions import emit_safely
from models.notification import Notification
from routes.auth import require_auth
from utils.notification_service import unread_count
from utils.pagination import get_page_params, pagination_dict

logger = logging.getLogger(__name__)

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route('/', methods=['GET'])
@require_auth
def list_notifications():
    """Own notifications, newest first; ?unread=true for unread only"""
    try:
        user_id = request.user_info['userId']
        page, limit, skip = get_page_params(request.args)
        query = {'recipient_id': user_id}
        if request.args.get('unread') == 'true':
            query['is_read'] = False

        notifications = get_collection('notifications')
        total = notifications.count_documents(query)
        docs = notifications.find(query).sort('created_at', -1).skip(skip).limit(limit)

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [Notification.from_dict(doc).to_public_dict() for doc in docs],
            'unreadCount': unread_count(user_id),
            'pagination': pagination_dict(page, limit, total),
        })

    except Exception as e:
        logger.exception("List notifications failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@notifications_bp.route('/unread-count', methods=['GET'])
@require_auth
def get_unread_count():
    try:
        return jsonify({'success': True, 'message': 'OK', 'count': unread_count(request.user_info['userId'])})

    except Exception as e:
        logger.exception("Unread count failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@notifications_bp.route('/<notification_id>/read', methods=['PATCH'])
@require_auth
def mark_read(notification_id: str):
    try:
        oid = parse_object_id(notification_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID thông báo không hợp lệ'}), 400

        user_id = request.user_info['userId']
        result = get_collection('notifications').update_one(
            {'_id': oid, 'recipient_id': user_id}, {'$set': {'is_read': True}})
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy thông báo'}), 404

        count = unread_count(user_id)
        emit_safely('notification_count', {'count': count}, f"user:{user_id}")
        return jsonify({'success': True, 'message': 'Đã đánh dấu đã đọc', 'count': count})

    except Exception as e:
        logger.exception("Mark notification read failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@notifications_bp.route('/read-all', methods=['PATCH'])
@require_auth
def mark_all_read():
    try:
        user_id = request.user_info['userId']
        result = get_collection('notifications').update_many(
            {'recipient_id': user_id, 'is_read': False}, {'$set': {'is_read': True}})

        emit_safely('notification_count', {'count': 0}, f"user:{user_id}")
        return jsonify({'success': True, 'message': 'Đã đánh dấu tất cả là đã đọc',
                        'modifiedCount': result.modified_count})

    except Exception as e:
        logger.exception("Mark all notifications read failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
