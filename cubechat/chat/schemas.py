from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


# Shared
class MessageData(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    recipient_id: str
    message: str
    timestamp: datetime
    is_read: bool


class LastMessageData(BaseModel):
    message: str
    sender_id: str
    timestamp: datetime
    is_read: bool


class CounterpartData(BaseModel):
    id: str
    username: str
    photo_url: Optional[str] = None


# Send Messages
class SendMessageModel(BaseModel):
    conversation_id: str
    content: str


class SendMessageResponseModel(BaseModel):
    message: MessageData


# Direct conversations
class CreateDirectConversationModel(BaseModel):
    receiver_id: str


class CreateDirectConversationResponseModel(BaseModel):
    conversation_id: str
    is_new: bool


# Inbox
class ConversationData(BaseModel):
    id: str
    participants: List[str]
    counterpart: CounterpartData
    last_message: Optional[LastMessageData] = None
    has_unread: bool


class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationData]


# Conversation details
class ConversationDetailsResponseModel(BaseModel):
    id: str
    participants: List[str]
    counterpart: CounterpartData
    last_message: Optional[LastMessageData] = None
    blocked_by_me: bool
    either_blocked: bool


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[MessageData]


# Read state
class MarkReadResponseModel(BaseModel):
    updated: int


class UnreadCountResponseModel(BaseModel):
    unread_count: int
