"""
Support Chat Models
Customer <-> seller support conversations and their messages
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List
import uuid

from db import isoformat

MESSAGE_TYPES = ("text", "image", "product")
SENDER_MODELS = ("User", "Seller")


@dataclass
class SupportConversation:
    """One support thread per active customer"""
    customerId: str
    customerName: str = ""
    customerAvatar: Optional[str] = None
    sellerId: Optional[str] = None
    status: str = "active"
    lastMessage: str = ""
    lastMessageAt: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    unreadCountCustomer: int = 0
    unreadCountSeller: int = 0
    conversationId: str = field(default_factory=lambda: str(uuid.uuid4()))
    createdAt: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updatedAt: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'conversationId': self.conversationId,
            'customerId': self.customerId,
            'customerName': self.customerName,
            'customerAvatar': self.customerAvatar,
            'sellerId': self.sellerId,
            'status': self.status,
            'lastMessage': self.lastMessage,
            'lastMessageAt': self.lastMessageAt,
            'unreadCountCustomer': self.unreadCountCustomer,
            'unreadCountSeller': self.unreadCountSeller,
            'createdAt': self.createdAt,
            'updatedAt': self.updatedAt,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data.update({
            '_id': str(self._id) if self._id else None,
            'lastMessageAt': isoformat(self.lastMessageAt),
            'createdAt': isoformat(self.createdAt),
            'updatedAt': isoformat(self.updatedAt),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'SupportConversation':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            conversationId=data.get('conversationId', ''),
            customerId=data.get('customerId', ''),
            customerName=data.get('customerName', ''),
            customerAvatar=data.get('customerAvatar'),
            sellerId=data.get('sellerId'),
            status=data.get('status', 'active'),
            lastMessage=data.get('lastMessage', ''),
            lastMessageAt=data.get('lastMessageAt', datetime.now(timezone.utc)),
            unreadCountCustomer=int(data.get('unreadCountCustomer', 0)),
            unreadCountSeller=int(data.get('unreadCountSeller', 0)),
            createdAt=data.get('createdAt', datetime.now(timezone.utc)),
            updatedAt=data.get('updatedAt', datetime.now(timezone.utc)),
        )


@dataclass
class SupportMessage:
    """A single message inside a support conversation"""
    conversationId: str
    senderId: str
    senderModel: str
    message: str
    senderName: str = ""
    senderAvatar: Optional[str] = None
    messageType: str = "text"
    attachments: List[dict] = field(default_factory=list)  # [{url, type}]
    productRef: Optional[str] = None
    isRead: bool = False
    readAt: Optional[datetime] = None
    createdAt: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def __post_init__(self):
        self.message = (self.message or '').strip()
        if not self.message:
            raise ValueError('Tin nhắn không được để trống')
        if self.senderModel not in SENDER_MODELS:
            raise ValueError(f'Unknown sender model: {self.senderModel}')
        if self.messageType not in MESSAGE_TYPES:
            raise ValueError(f'Loại tin nhắn không hợp lệ: {self.messageType}')

    def to_dict(self) -> dict:
        data = {
            'conversationId': self.conversationId,
            'senderId': self.senderId,
            'senderModel': self.senderModel,
            'senderName': self.senderName,
            'senderAvatar': self.senderAvatar,
            'message': self.message,
            'messageType': self.messageType,
            'attachments': self.attachments,
            'productRef': self.productRef,
            'isRead': self.isRead,
            'readAt': self.readAt,
            'createdAt': self.createdAt,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data.update({
            '_id': str(self._id) if self._id else None,
            'readAt': isoformat(self.readAt),
            'createdAt': isoformat(self.createdAt),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'SupportMessage':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            conversationId=data.get('conversationId', ''),
            senderId=data.get('senderId', ''),
            senderModel=data.get('senderModel', 'User'),
            senderName=data.get('senderName', ''),
            senderAvatar=data.get('senderAvatar'),
            message=data.get('message', ''),
            messageType=data.get('messageType', 'text'),
            attachments=data.get('attachments', []),
            productRef=data.get('productRef'),
            isRead=bool(data.get('isRead', False)),
            readAt=data.get('readAt'),
            createdAt=data.get('createdAt', datetime.now(timezone.utc)),
        )
