"""
Support Chat Service
Conversation bookkeeping shared by the support-chat routes and socket handlers.

Raises LookupError for unknown conversations/customers, PermissionError when the
caller may not touch a conversation and ValueError for invalid messages.
"""

from __future__ import annotations
import logging
from typing import Optional

from db import get_collection, parse_object_id, utcnow
from extensions import emit_safely
from models.support_chat import SupportConversation, SupportMessage
from utils.pagination import pagination_dict

logger = logging.getLogger(__name__)


def room_name(conversation_id: str) -> str:
    return f"support:{conversation_id}"


def get_conversation(conversation_id: str) -> Optional[dict]:
    return get_collection('support_conversations').find_one({'conversationId': conversation_id})


def can_access(conversation: dict, user_id: str, role: str) -> bool:
    return role == 'seller' or conversation.get('customerId') == user_id


def get_or_create_conversation(customer_id: str) -> dict:
    """Reuse the customer's active conversation or open a new one"""
    conversations = get_collection('support_conversations')
    existing = conversations.find_one({'customerId': customer_id, 'status': 'active'})
    if existing:
        return existing

    customer = get_collection('users').find_one({'_id': parse_object_id(customer_id)})
    if not customer:
        raise LookupError('Không tìm thấy khách hàng')

    conversation = SupportConversation(
        customerId=customer_id,
        customerName=customer.get('name', ''),
        customerAvatar=customer.get('avatar'),
    )
    doc = conversation.to_dict()
    result = conversations.insert_one(doc)
    doc['_id'] = result.inserted_id
    logger.info("Support conversation %s opened for %s", conversation.conversationId, customer_id)
    return doc


def send_message(conversation_id: str, sender_id: str, role: str, data: dict) -> dict:
    conversation = get_conversation(conversation_id)
    if not conversation:
        raise LookupError('Không tìm thấy cuộc trò chuyện')
    if not can_access(conversation, sender_id, role):
        raise PermissionError('Bạn không có quyền gửi tin nhắn vào cuộc trò chuyện này')
    if role != 'seller' and conversation.get('status') == 'closed':
        raise ValueError('Cuộc trò chuyện đã đóng')

    sender = get_collection('users').find_one({'_id': parse_object_id(sender_id)}) or {}
    sender_model = 'Seller' if role == 'seller' else 'User'
    message = SupportMessage(
        conversationId=conversation_id,
        senderId=sender_id,
        senderModel=sender_model,
        senderName=sender.get('name', ''),
        senderAvatar=sender.get('avatar'),
        message=data.get('message', ''),
        messageType=data.get('messageType', 'text'),
        attachments=data.get('attachments') or [],
        productRef=data.get('productRef'),
    )
    result = get_collection('support_messages').insert_one(message.to_dict())
    message._id = str(result.inserted_id)

    now = utcnow()
    update = {'$set': {'lastMessage': message.message, 'lastMessageAt': now, 'updatedAt': now}}
    if sender_model == 'User':
        update['$inc'] = {'unreadCountSeller': 1}
    else:
        update['$inc'] = {'unreadCountCustomer': 1}
        update['$set']['sellerId'] = sender_id
    get_collection('support_conversations').update_one({'conversationId': conversation_id}, update)

    public = message.to_public_dict()
    emit_safely('support_new_message', public, room_name(conversation_id))
    emit_safely('support_conversation_update', {
        'conversationId': conversation_id,
        'lastMessage': message.message,
        'lastMessageAt': public['createdAt'],
        'senderModel': sender_model,
    }, 'seller')
    return public


def get_messages(conversation_id: str, page: int = 1, limit: int = 50) -> dict:
    """Newest page first from the database, returned oldest-first for display"""
    messages = get_collection('support_messages')
    query = {'conversationId': conversation_id}
    total = messages.count_documents(query)
    cursor = messages.find(query).sort('createdAt', -1).skip((page - 1) * limit).limit(limit)
    items = [SupportMessage.from_dict(doc) for doc in cursor]
    items.reverse()
    return {
        'messages': [item.to_public_dict() for item in items],
        'pagination': pagination_dict(page, limit, total),
    }


def mark_as_read(conversation_id: str, role: str) -> int:
    """Mark the other side's messages read and zero the caller's counter"""
    user_type = 'seller' if role == 'seller' else 'customer'
    other_side = 'User' if user_type == 'seller' else 'Seller'
    result = get_collection('support_messages').update_many(
        {'conversationId': conversation_id, 'senderModel': other_side, 'isRead': False},
        {'$set': {'isRead': True, 'readAt': utcnow()}},
    )
    counter = 'unreadCountSeller' if user_type == 'seller' else 'unreadCountCustomer'
    get_collection('support_conversations').update_one(
        {'conversationId': conversation_id}, {'$set': {counter: 0}})

    emit_safely('support_messages_read', {
        'conversationId': conversation_id,
        'userType': user_type,
        'readCount': result.modified_count,
    }, room_name(conversation_id))
    return result.modified_count


def list_conversations(status: Optional[str], page: int, limit: int) -> dict:
    conversations = get_collection('support_conversations')
    query = {'status': status or 'active'}
    total = conversations.count_documents(query)
    cursor = conversations.find(query).sort('lastMessageAt', -1).skip((page - 1) * limit).limit(limit)
    return {
        'conversations': [SupportConversation.from_dict(doc).to_public_dict() for doc in cursor],
        'pagination': pagination_dict(page, limit, total),
    }


def close_conversation(conversation_id: str) -> dict:
    conversations = get_collection('support_conversations')
    now = utcnow()
    result = conversations.update_one(
        {'conversationId': conversation_id},
        {'$set': {'status': 'closed', 'updatedAt': now}},
    )
    if result.matched_count == 0:
        raise LookupError('Không tìm thấy cuộc trò chuyện')

    emit_safely('support_conversation_closed', {
        'conversationId': conversation_id,
        'closedAt': now.isoformat(),
    }, room_name(conversation_id))
    emit_safely('support_conversation_update', {
        'conversationId': conversation_id,
        'status': 'closed',
    }, 'seller')
    return conversations.find_one({'conversationId': conversation_id})


def get_stats() -> dict:
    conversations = get_collection('support_conversations')
    active_unread = conversations.find({'status': 'active', 'unreadCountSeller': {'$gt': 0}},
                                       {'unreadCountSeller': 1})
    return {
        'activeConversations': conversations.count_documents({'status': 'active'}),
        'closedConversations': conversations.count_documents({'status': 'closed'}),
        'totalUnread': sum(doc.get('unreadCountSeller', 0) for doc in active_unread),
    }
