"""Client modules for external service integrations."""

from readycheck.clients.email_client import (
    ResendEmailClient,
    get_email_client
)

from readycheck.clients.supabase_client import (
    SupabaseClient,
    UserRepository,
    PendingCredentialRepository,
    BaselineRepository,
    CheckRecordRepository,
    DatabaseManager,
    get_database
)

__all__ = [
    "ResendEmailClient",
    "get_email_client",
    "SupabaseClient",
    "UserRepository",
    "PendingCredentialRepository",
    "BaselineRepository",
    "CheckRecordRepository",
    "DatabaseManager",
    "get_database"
]
