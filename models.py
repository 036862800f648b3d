# Run on startup; every statement is idempotent.
CREATE_EXTENSION_IF_NOT_EXISTS = """
CREATE EXTENSION IF NOT EXISTS "pgcrypto";
"""

CREATE_USAGE_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    event_type TEXT NOT NULL,
    session_id TEXT NOT NULL,
    metadata JSONB,
    error_message TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);
"""

CREATE_USAGE_LOG_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_usage_logs_session ON {table}(session_id);",
    "CREATE INDEX IF NOT EXISTS idx_usage_logs_created_at ON {table}(created_at DESC);",
]

# Roles are managed elsewhere; this service only reads them.
CREATE_USER_ROLES_TABLE = """
CREATE TABLE IF NOT EXISTS user_roles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'moderator', 'user')),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    UNIQUE (user_id, role)
);
"""


def schema_statements(usage_table: str) -> list[str]:
    return [
        CREATE_EXTENSION_IF_NOT_EXISTS,
        CREATE_USAGE_LOG_TABLE.format(table=usage_table),
        *[stmt.format(table=usage_table) for stmt in CREATE_USAGE_LOG_INDEXES],
        CREATE_USER_ROLES_TABLE,
    ]
