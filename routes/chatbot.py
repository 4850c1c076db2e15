"""
Chatbot Routes
Shopping assistant answering product questions with the Groq chat API
"""

from __future__ import annotations
import logging
import uuid

from flask import Blueprint, jsonify, request

from db import get_collection
from models.chat_message import ChatMessage
from models.product import Product
from routes.auth import optional_auth, require_auth
from utils.chatbot_service import get_chatbot_response

logger = logging.getLogger(__name__)

chatbot_bp = Blueprint('chatbot', __name__, url_prefix='/api/chatbot')

MAX_MESSAGE_LENGTH = 1000
HISTORY_LIMIT = 50


@chatbot_bp.route('/message', methods=['POST'])
@optional_auth
def send_message():
    """
    Ask the assistant
    Expects: message, optional sessionId; exchanges of logged-in users are saved
    """
    try:
        data = request.get_json(silent=True) or {}
        message = (data.get('message') or '').strip()
        if not message:
            return jsonify({'success': False, 'message': 'Vui lòng nhập câu hỏi'}), 400
        if len(message) > MAX_MESSAGE_LENGTH:
            return jsonify({'success': False,
                            'message': f'Câu hỏi không được vượt quá {MAX_MESSAGE_LENGTH} ký tự'}), 400

        session_id = data.get('sessionId') or str(uuid.uuid4())
        result = get_chatbot_response(message)
        products = [Product.from_dict(doc).to_public_dict() for doc in result['products']]

        if request.user_info:
            chat_message = ChatMessage(
                userId=request.user_info['userId'],
                sessionId=session_id,
                message=message,
                response=result['response'],
                metadata={
                    'relevantProducts': [p['_id'] for p in products],
                    'searchQuery': message,
                    'resolved': not result['metadata'].get('error', False),
                },
            )
            get_collection('chat_messages').insert_one(chat_message.to_dict())

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': {
                'response': result['response'],
                'products': products,
                'sessionId': session_id,
                'metadata': result['metadata'],
            }
        })

    except Exception as e:
        logger.exception("Chatbot message failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@chatbot_bp.route('/history/<session_id>', methods=['GET'])
@require_auth
def get_history(session_id: str):
    """Own messages in a session, oldest first"""
    try:
        docs = get_collection('chat_messages').find({
            'userId': request.user_info['userId'],
            'sessionId': session_id,
        }).sort('createdAt', 1).limit(HISTORY_LIMIT)

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [ChatMessage.from_dict(doc).to_public_dict() for doc in docs],
        })

    except Exception as e:
        logger.exception("Chatbot history failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
