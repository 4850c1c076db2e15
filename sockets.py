"""
Socket.IO handlers
Authenticated connections, per-user/seller rooms and support chat rooms
"""

from __future__ import annotations

import logging

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from db import get_collection, parse_object_id
from extensions import socketio
from utils import support_chat_service as chat
from utils.tokens import decode_access_token, user_info_from_payload

logger = logging.getLogger(__name__)

# sid -> {userId, email, role}
connected_users: dict[str, dict] = {}


def _authenticate(auth) -> dict | None:
    token = (auth or {}).get('token') if isinstance(auth, dict) else None
    token = token or request.args.get('token')
    if not token:
        return None
    if token.startswith('Bearer '):
        token = token[7:]

    payload = decode_access_token(current_app.config['settings'], token)
    if not payload:
        return None
    user_info = user_info_from_payload(payload)
    user = get_collection('users').find_one({'_id': parse_object_id(user_info['userId'])}, {'active': 1, 'role': 1})
    if not user or not user.get('active', False):
        return None
    user_info['role'] = user.get('role', user_info.get('role'))
    return user_info


@socketio.on('connect')
def handle_connect(auth=None):
    user_info = _authenticate(auth)
    if user_info is None:
        logger.info("Socket connection refused: %s", request.sid)
        return False

    connected_users[request.sid] = user_info
    join_room(f"user:{user_info['userId']}")
    if user_info.get('role') == 'seller':
        join_room('seller')
    logger.info("Socket %s connected as %s (%s)", request.sid, user_info['userId'], user_info.get('role'))
    return True


@socketio.on('disconnect')
def handle_disconnect(*args):
    user_info = connected_users.pop(request.sid, None)
    if user_info:
        logger.info("Socket %s disconnected (%s)", request.sid, user_info['userId'])


@socketio.on('join_support_room')
def handle_join_support_room(data):
    user_info = connected_users.get(request.sid)
    conversation_id = (data or {}).get('conversationId') if isinstance(data, dict) else data
    if not user_info or not conversation_id:
        emit('support_error', {'message': 'conversationId là bắt buộc'})
        return

    conversation = chat.get_conversation(conversation_id)
    if not conversation or not chat.can_access(conversation, user_info['userId'], user_info.get('role')):
        emit('support_error', {'message': 'Bạn không có quyền tham gia cuộc trò chuyện này',
                               'conversationId': conversation_id})
        return

    join_room(chat.room_name(conversation_id))
    emit('joined_support_room', {'conversationId': conversation_id})


@socketio.on('leave_support_room')
def handle_leave_support_room(data):
    conversation_id = (data or {}).get('conversationId') if isinstance(data, dict) else data
    if not conversation_id:
        return
    leave_room(chat.room_name(conversation_id))
    emit('left_support_room', {'conversationId': conversation_id})


@socketio.on('support_typing')
def handle_support_typing(data):
    user_info = connected_users.get(request.sid)
    if not user_info or not isinstance(data, dict) or not data.get('conversationId'):
        return
    conversation = chat.get_conversation(data['conversationId'])
    if not conversation or not chat.can_access(conversation, user_info['userId'], user_info.get('role')):
        return
    emit('support_user_typing', {
        'conversationId': data['conversationId'],
        'userId': user_info['userId'],
        'userType': 'seller' if user_info.get('role') == 'seller' else 'customer',
        'isTyping': bool(data.get('isTyping')),
    }, to=chat.room_name(data['conversationId']), include_self=False)
