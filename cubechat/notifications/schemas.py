from pydantic import BaseModel
from typing import Optional


# Supabase database webhook payload for messages inserts
class MessageRecord(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    recipient_id: str
    message: str


class MessageCreatedEvent(BaseModel):
    type: str
    table: str
    record: Optional[MessageRecord] = None
    old_record: Optional[dict] = None


class MessageCreatedResponseModel(BaseModel):
    dispatched: bool
