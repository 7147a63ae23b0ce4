profiles_sql = """
CREATE TABLE profiles (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,

    -- 3-20 chars of [a-z0-9_], no leading or trailing underscore
    username TEXT UNIQUE,
    photo_url TEXT,
    push_token TEXT,

    -- users this profile has blocked (directed)
    blocked_users TEXT[] NOT NULL DEFAULT '{}',

    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""
