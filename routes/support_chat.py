"""
Support Chat Routes
REST side of the customer <-> seller support chat; live events go through sockets.py
"""

from __future__ import annotations
import logging

from flask import Blueprint, jsonify, request

from models.support_chat import SupportConversation
from routes.auth import require_auth, require_seller
from utils import support_chat_service as chat
from utils.pagination import get_page_params

logger = logging.getLogger(__name__)

support_chat_bp = Blueprint('support_chat', __name__, url_prefix='/api/support-chat')


@support_chat_bp.route('/conversation/start', methods=['POST'])
@require_auth
def start_conversation():
    try:
        if request.user_info.get('role') == 'seller':
            return jsonify({'success': False, 'message': 'Người bán không thể mở cuộc trò chuyện hỗ trợ'}), 400

        doc = chat.get_or_create_conversation(request.user_info['userId'])
        return jsonify({'success': True, 'message': 'OK',
                        'conversation': SupportConversation.from_dict(doc).to_public_dict()})

    except LookupError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    except Exception as e:
        logger.exception("Start support conversation failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@support_chat_bp.route('/message/send', methods=['POST'])
@require_auth
def send_message():
    try:
        data = request.get_json(silent=True) or {}
        conversation_id = data.get('conversationId')
        if not conversation_id:
            return jsonify({'success': False, 'message': 'conversationId là bắt buộc'}), 400

        message = chat.send_message(conversation_id, request.user_info['userId'],
                                    request.user_info.get('role'), data)
        return jsonify({'success': True, 'message': 'Đã gửi tin nhắn', 'data': message}), 201

    except LookupError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    except PermissionError as e:
        return jsonify({'success': False, 'message': str(e)}), 403
    except ValueError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        logger.exception("Send support message failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@support_chat_bp.route('/conversation/<conversation_id>/messages', methods=['GET'])
@require_auth
def get_messages(conversation_id: str):
    """Paginated history; reading it marks the other side's messages read"""
    try:
        conversation = chat.get_conversation(conversation_id)
        if not conversation:
            return jsonify({'success': False, 'message': 'Không tìm thấy cuộc trò chuyện'}), 404
        role = request.user_info.get('role')
        if not chat.can_access(conversation, request.user_info['userId'], role):
            return jsonify({'success': False, 'message': 'Bạn không có quyền xem cuộc trò chuyện này'}), 403

        page, limit, _ = get_page_params(request.args, default_limit=50)
        result = chat.get_messages(conversation_id, page, limit)
        chat.mark_as_read(conversation_id, role)

        return jsonify({
            'success': True,
            'message': 'OK',
            'conversation': SupportConversation.from_dict(chat.get_conversation(conversation_id)).to_public_dict(),
            **result,
        })

    except Exception as e:
        logger.exception("Get support messages failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Seller routes

@support_chat_bp.route('/conversations', methods=['GET'])
@require_seller
def list_conversations():
    try:
        page, limit, _ = get_page_params(request.args)
        status = request.args.get('status')
        if status not in (None, 'active', 'closed'):
            return jsonify({'success': False, 'message': 'Trạng thái không hợp lệ'}), 400

        return jsonify({'success': True, 'message': 'OK', **chat.list_conversations(status, page, limit)})

    except Exception as e:
        logger.exception("List support conversations failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@support_chat_bp.route('/conversation/<conversation_id>/close', methods=['PUT'])
@require_seller
def close_conversation(conversation_id: str):
    try:
        doc = chat.close_conversation(conversation_id)
        return jsonify({'success': True, 'message': 'Đã đóng cuộc trò chuyện',
                        'conversation': SupportConversation.from_dict(doc).to_public_dict()})

    except LookupError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    except Exception as e:
        logger.exception("Close support conversation failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@support_chat_bp.route('/stats', methods=['GET'])
@require_seller
def get_stats():
    try:
        return jsonify({'success': True, 'message': 'OK', 'data': chat.get_stats()})

    except Exception as e:
        logger.exception("Support chat stats failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
