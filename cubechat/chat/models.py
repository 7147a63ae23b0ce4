conversations_sql = """
CREATE TABLE conversations (
    -- canonical key: both participant ids sorted and joined with '_'
    id TEXT PRIMARY KEY,
    participants TEXT[] NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    -- denormalized summary of the newest message, may lag the messages table
    last_message_body TEXT,
    last_message_sender_id UUID,
    last_message_at TIMESTAMPTZ,
    last_message_is_read BOOLEAN,

    unread_by TEXT[] NOT NULL DEFAULT '{}',

    CONSTRAINT two_participants CHECK (cardinality(participants) = 2)
);

CREATE INDEX conversations_participants_idx ON conversations USING GIN (participants);
"""

messages_sql = """
CREATE TABLE messages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    -- write sequence, breaks ties between equal timestamps
    seq BIGSERIAL NOT NULL,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    sender_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    recipient_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    message TEXT NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT now(),
    is_read BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX messages_conversation_order_idx ON messages (conversation_id, timestamp, seq);
CREATE INDEX messages_unread_idx ON messages (recipient_id, is_read);
"""

message_created_webhook_sql = """
-- Database webhook: POST every inserted message to the notification dispatcher.
CREATE TRIGGER message_created_push
AFTER INSERT ON messages
FOR EACH ROW EXECUTE FUNCTION supabase_functions.http_request(
    'https://api.example.com/notifications/message-created',
    'POST',
    '{"Content-Type":"application/json","X-Webhook-Secret":"<NOTIFICATION_WEBHOOK_SECRET>"}',
    '{}',
    '5000'
);
"""
