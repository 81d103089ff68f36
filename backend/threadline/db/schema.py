"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    sequence_num INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    topic_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    user_id TEXT,
    event_type TEXT NOT NULL,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_topic_id ON events(topic_id);
CREATE INDEX IF NOT EXISTS idx_events_event_type ON events(event_type);

CREATE TABLE IF NOT EXISTS topics (
    topic_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    user_id TEXT NOT NULL,
    require_initial_post INTEGER NOT NULL DEFAULT 0,
    group_assignment INTEGER NOT NULL DEFAULT 0,
    parent_topic_id TEXT,
    group_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (parent_topic_id) REFERENCES topics(topic_id)
);

CREATE INDEX IF NOT EXISTS idx_topics_parent_topic_id ON topics(parent_topic_id);

CREATE TABLE IF NOT EXISTS entries (
    entry_id TEXT PRIMARY KEY,
    topic_id TEXT NOT NULL,
    parent_id TEXT,
    root_entry_id TEXT,
    user_id TEXT NOT NULL,
    editor_id TEXT,
    message TEXT NOT NULL,
    attachment TEXT,
    deleted INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (topic_id) REFERENCES topics(topic_id)
);

CREATE INDEX IF NOT EXISTS idx_entries_topic_created ON entries(topic_id, created_at, entry_id);
CREATE INDEX IF NOT EXISTS idx_entries_root_created ON entries(root_entry_id, created_at, entry_id);
CREATE INDEX IF NOT EXISTS idx_entries_topic_user ON entries(topic_id, user_id);

CREATE TABLE IF NOT EXISTS materialized_views (
    topic_id TEXT PRIMARY KEY,
    structure TEXT,
    root_fragments TEXT,
    entry_ids TEXT,
    participant_ids TEXT,
    generation INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0,
    built_version INTEGER,
    built_at TEXT
);

CREATE TABLE IF NOT EXISTS entry_read_states (
    user_id TEXT NOT NULL,
    entry_id TEXT NOT NULL,
    topic_id TEXT NOT NULL,
    read_state TEXT NOT NULL,
    forced INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (user_id, entry_id)
);

CREATE INDEX IF NOT EXISTS idx_entry_read_states_topic ON entry_read_states(topic_id, user_id);

CREATE TABLE IF NOT EXISTS topic_read_states (
    user_id TEXT NOT NULL,
    topic_id TEXT NOT NULL,
    read_state TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (user_id, topic_id)
);

CREATE TABLE IF NOT EXISTS attachments (
    attachment_id TEXT PRIMARY KEY,
    topic_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    content_type TEXT NOT NULL,
    size INTEGER NOT NULL,
    data BLOB NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_attachments_user_id ON attachments(user_id);

CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    avatar_url TEXT
);

CREATE TABLE IF NOT EXISTS group_memberships (
    group_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    PRIMARY KEY (group_id, user_id)
);
"""
