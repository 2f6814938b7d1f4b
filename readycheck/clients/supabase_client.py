"""Supabase client for database operations."""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

import httpx
import pydantic
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from ..config import settings
from ..exceptions import StoreUnavailableError
from ..models.internal_models import (
    CheckRecord,
    MetricBaseline,
    PendingCredential,
    Readiness,
    User,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
_TIMESTAMP = pydantic.TypeAdapter(datetime)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a PostgREST timestamptz; fractional seconds may have any number of digits."""
    if value is None:
        return None
    try:
        return _TIMESTAMP.validate_python(value)
    except pydantic.ValidationError as e:
        logger.error(f"Unparseable timestamp in database row: {value!r}")
        raise StoreUnavailableError("Database returned an unparseable timestamp") from e


def _store_error(operation: str, error: Exception) -> StoreUnavailableError:
    """Wrap a driver error without echoing query values (hashes, emails) back out."""
    code = getattr(error, "code", None) or type(error).__name__
    logger.error(f"Database operation '{operation}' failed: {code}")
    return StoreUnavailableError(f"Database operation '{operation}' failed ({code})")


class SupabaseClient:
    """Client for Supabase database operations."""

    def __init__(self, url: str, key: str, timeout: float = 10.0):
        """
        Initialize Supabase client configuration.

        Args:
            url: Supabase project URL
            key: Service role key
            timeout: PostgREST request timeout in seconds
        """
        self._client: Optional[Client] = None
        self._url = url
        self._key = key
        self._timeout = timeout

    @property
    def client(self) -> Client:
        """Get or create Supabase client instance."""
        if self._client is None:
            self._client = create_client(
                self._url,
                self._key,
                options=ClientOptions(postgrest_client_timeout=self._timeout)
            )
        return self._client

    def table(self, name: str):
        return self.client.table(name)

    async def health_check(self) -> bool:
        """Check if database connection is healthy."""
        try:
            self.table("users").select("id", count="exact").limit(0).execute()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {type(e).__name__}")
            return False


class PendingCredentialRepository:
    """Repository for one-time sign-in codes."""

    def __init__(self, supabase_client: SupabaseClient):
        self.client = supabase_client

    @staticmethod
    def _from_row(row: dict) -> PendingCredential:
        return PendingCredential(
            id=str(row["id"]),
            email=row["email"],
            code_hash=row["code_hash"],
            created_at=_parse_timestamp(row["created_at"]),
            expires_at=_parse_timestamp(row["expires_at"]),
            consumed_at=_parse_timestamp(row.get("consumed_at"))
        )

    async def create(self, credential: PendingCredential) -> PendingCredential:
        """Insert a new pending credential and return it with its generated ID."""
        try:
            result = self.client.table("pending_credentials").insert({
                "email": credential.email,
                "code_hash": credential.code_hash,
                "created_at": credential.created_at.isoformat(),
                "expires_at": credential.expires_at.isoformat()
            }).execute()
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("create_pending_credential", e) from e

        if not result.data:
            raise StoreUnavailableError("Database operation 'create_pending_credential' returned no row")

        credential.id = str(result.data[0]["id"])
        return credential

    async def find_latest(self, email: str, code_hash: str) -> Optional[PendingCredential]:
        """Most recent credential for this email whose digest matches."""
        try:
            result = (
                self.client.table("pending_credentials")
                .select("*")
                .eq("email", email)
                .eq("code_hash", code_hash)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("find_pending_credential", e) from e

        if not result.data:
            return None
        return self._from_row(result.data[0])

    async def get(self, credential_id: str) -> Optional[PendingCredential]:
        try:
            result = (
                self.client.table("pending_credentials")
                .select("*")
                .eq("id", credential_id)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("get_pending_credential", e) from e

        if not result.data:
            return None
        return self._from_row(result.data[0])

    async def consume(self, credential_id: str, now: datetime) -> bool:
        """
        Mark a credential consumed if it is still unconsumed and unexpired.

        The filter and the write run as one UPDATE statement, so of two
        concurrent callers at most one gets a row back.

        Returns:
            True if this call consumed the credential
        """
        try:
            result = (
                self.client.table("pending_credentials")
                .update({"consumed_at": now.isoformat()})
                .eq("id", credential_id)
                .is_("consumed_at", "null")
                .gt("expires_at", now.isoformat())
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("consume_pending_credential", e) from e

        return bool(result.data)

    async def expire_outstanding(self, email: str, now: datetime) -> int:
        """Force every unconsumed, unexpired credential for `email` to expire now."""
        try:
            result = (
                self.client.table("pending_credentials")
                .update({"expires_at": now.isoformat()})
                .eq("email", email)
                .is_("consumed_at", "null")
                .gt("expires_at", now.isoformat())
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("expire_pending_credentials", e) from e

        return len(result.data or [])


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, supabase_client: SupabaseClient):
        self.client = supabase_client

    async def insert_if_absent(self, user: User) -> None:
        """Insert the user unless the email is already taken (unique constraint)."""
        try:
            self.client.table("users").upsert(
                {
                    "id": user.id,
                    "email": user.email,
                    "created_at": user.created_at.isoformat()
                },
                on_conflict="email",
                ignore_duplicates=True
            ).execute()
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("insert_user", e) from e

    async def get_by_email(self, email: str) -> Optional[User]:
        try:
            result = self.client.table("users").select("*").eq("email", email).limit(1).execute()
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("get_user_by_email", e) from e

        if not result.data:
            return None

        row = result.data[0]
        return User(
            id=str(row["id"]),
            email=row["email"],
            created_at=_parse_timestamp(row["created_at"])
        )


class BaselineRepository:
    """Repository for per-user, per-metric running baselines."""

    def __init__(self, supabase_client: SupabaseClient):
        self.client = supabase_client

    @staticmethod
    def _from_row(row: dict) -> MetricBaseline:
        return MetricBaseline(
            user_id=str(row["user_id"]),
            metric=row["metric"],
            mean=float(row["mean"]),
            std=float(row["std"]),
            sample_count=int(row["sample_count"]),
            updated_at=_parse_timestamp(row.get("updated_at"))
        )

    async def get_for_metrics(self, user_id: str, metrics: Iterable[str]) -> Dict[str, MetricBaseline]:
        """Load the baselines of several metrics in one query."""
        names = list(metrics)
        if not names:
            return {}

        try:
            result = (
                self.client.table("metric_baselines")
                .select("*")
                .eq("user_id", user_id)
                .in_("metric", names)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("get_baselines", e) from e

        return {row["metric"]: self._from_row(row) for row in result.data or []}

    async def get(self, user_id: str, metric: str) -> Optional[MetricBaseline]:
        baselines = await self.get_for_metrics(user_id, [metric])
        return baselines.get(metric)

    async def insert(self, baseline: MetricBaseline) -> bool:
        """
        Insert a first baseline for a metric.

        Returns:
            False if another writer created the row first
        """
        try:
            self.client.table("metric_baselines").insert({
                "user_id": baseline.user_id,
                "metric": baseline.metric,
                "mean": baseline.mean,
                "std": baseline.std,
                "sample_count": baseline.sample_count,
                "updated_at": baseline.updated_at.isoformat()
            }).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.info(f"Baseline {baseline.metric} for user {baseline.user_id} created concurrently")
                return False
            raise _store_error("insert_baseline", e) from e
        except httpx.HTTPError as e:
            raise _store_error("insert_baseline", e) from e

        return True

    async def update_if_unchanged(self, baseline: MetricBaseline, expected_count: int) -> bool:
        """
        Write new statistics only if the stored sample count is still `expected_count`.

        Returns:
            False if a concurrent writer advanced the row first
        """
        try:
            result = (
                self.client.table("metric_baselines")
                .update({
                    "mean": baseline.mean,
                    "std": baseline.std,
                    "sample_count": baseline.sample_count,
                    "updated_at": baseline.updated_at.isoformat()
                })
                .eq("user_id", baseline.user_id)
                .eq("metric", baseline.metric)
                .eq("sample_count", expected_count)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("update_baseline", e) from e

        return bool(result.data)


class CheckRecordRepository:
    """Repository for readiness check records."""

    def __init__(self, supabase_client: SupabaseClient):
        self.client = supabase_client

    @staticmethod
    def _from_row(row: dict) -> CheckRecord:
        flag = row.get("flag")
        return CheckRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            started_at=_parse_timestamp(row["started_at"]),
            ended_at=_parse_timestamp(row.get("ended_at")),
            device_fingerprint=row.get("device_fingerprint"),
            metrics_snapshot=row.get("metrics_snapshot"),
            score_payload=row.get("score_payload"),
            flag=Readiness(flag) if flag else None,
            integrity=row.get("integrity")
        )

    async def create(self, record: CheckRecord) -> CheckRecord:
        try:
            result = self.client.table("check_records").insert({
                "user_id": record.user_id,
                "started_at": record.started_at.isoformat(),
                "device_fingerprint": record.device_fingerprint
            }).execute()
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("create_check", e) from e

        if not result.data:
            raise StoreUnavailableError("Database operation 'create_check' returned no row")

        record.id = str(result.data[0]["id"])
        return record

    async def get(self, check_id: str, user_id: str) -> Optional[CheckRecord]:
        """Fetch a check, scoped to its owner."""
        try:
            result = (
                self.client.table("check_records")
                .select("*")
                .eq("id", check_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("get_check", e) from e

        if not result.data:
            return None
        return self._from_row(result.data[0])

    async def complete(self, record: CheckRecord) -> bool:
        """
        Store the score of a check that has not been completed yet.

        Returns:
            False if the check was already completed
        """
        try:
            result = (
                self.client.table("check_records")
                .update({
                    "ended_at": record.ended_at.isoformat(),
                    "metrics_snapshot": record.metrics_snapshot,
                    "score_payload": record.score_payload,
                    "flag": record.flag.value,
                    "integrity": record.integrity
                })
                .eq("id", record.id)
                .eq("user_id", record.user_id)
                .is_("ended_at", "null")
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise _store_error("complete_check", e) from e

        return bool(result.data)


class DatabaseManager:
    """High-level database manager that coordinates repositories."""

    def __init__(self, supabase_client: SupabaseClient):
        """Initialize database manager with client and repositories."""
        self.client = supabase_client
        self.users = UserRepository(self.client)
        self.credentials = PendingCredentialRepository(self.client)
        self.baselines = BaselineRepository(self.client)
        self.checks = CheckRecordRepository(self.client)

    async def health_check(self) -> bool:
        """Check overall database health."""
        return await self.client.health_check()


# Global database manager instance
_database: Optional[DatabaseManager] = None


def get_database() -> DatabaseManager:
    """
    Get the global database manager, configured from application settings.

    Returns:
        DatabaseManager: The global database manager instance
    """
    global _database
    if _database is None:
        _database = DatabaseManager(SupabaseClient(
            url=settings.supabase_url,
            key=settings.supabase_key,
            timeout=settings.store_timeout_seconds
        ))
    return _database
