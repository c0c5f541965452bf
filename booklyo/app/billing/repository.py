"""Persistence layer for accounts and their entitlement state."""
from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .exceptions import StoreError, StoreWriteError, UnresolvedAccountError
from .models import Account, EntitlementState, EntitlementUpdate

ConnectionFactory = Callable[[], PgConnection]

_UPDATABLE_COLUMNS = frozenset(EntitlementUpdate.model_fields)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        account_id TEXT PRIMARY KEY,
        contact_email TEXT,
        entitlement_state TEXT NOT NULL DEFAULT 'pending'
            CHECK (entitlement_state IN ('active', 'pending', 'expired', 'cancelled')),
        payment_customer_ref TEXT UNIQUE,
        payment_subscription_ref TEXT,
        entitlement_updated_at TIMESTAMPTZ,
        subscription_ends_at TIMESTAMPTZ,
        last_payment_at TIMESTAMPTZ,
        last_payment_amount NUMERIC(12, 2),
        payment_failed_at TIMESTAMPTZ,
        subscription_cancelled_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id BIGSERIAL PRIMARY KEY,
        event_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        source TEXT NOT NULL,
        data JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS audit_logs_created_at_idx ON audit_logs (created_at DESC)",
)


@contextmanager
def managed_connection(connection_factory: ConnectionFactory) -> Iterator[PgConnection]:
    """Open a connection, committing on success and rolling back on error."""

    connection = connection_factory()
    try:
        yield connection
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_account(row: dict) -> Account:
    return Account(
        account_id=row["account_id"],
        contact_email=row.get("contact_email"),
        entitlement_state=EntitlementState(row["entitlement_state"]),
        payment_customer_ref=row.get("payment_customer_ref"),
        payment_subscription_ref=row.get("payment_subscription_ref"),
        entitlement_updated_at=row.get("entitlement_updated_at"),
        subscription_ends_at=row.get("subscription_ends_at"),
        last_payment_at=row.get("last_payment_at"),
        last_payment_amount=row.get("last_payment_amount"),
        payment_failed_at=row.get("payment_failed_at"),
        subscription_cancelled_at=row.get("subscription_cancelled_at"),
    )


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class PostgresAccountRepository:
    """Account store backed by a single PostgreSQL table.

    Every write touches exactly one row by primary key; no multi-row
    transactions are relied upon.
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory

    @contextmanager
    def _cursor(self, *, writing: bool = False) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._connection_factory) as connection:
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            error_cls = StoreWriteError if writing else StoreError
            raise error_cls(f"Account store unavailable: {exc.__class__.__name__}") from exc

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM accounts
                WHERE account_id = %s
                LIMIT 1
                """,
                (account_id,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def find_account_by_customer_ref(self, customer_ref: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM accounts
                WHERE payment_customer_ref = %s
                LIMIT 1
                """,
                (customer_ref,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def apply_entitlement_update(self, account_id: str, update: EntitlementUpdate) -> Account:
        """Write the reconciled fields onto one account and return the stored row."""

        changes = update.changes()
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported account columns: {sorted(unknown)}")

        assignments = ", ".join(f"{column} = %({column})s" for column in sorted(changes))
        params: Dict[str, Any] = {column: _db_value(value) for column, value in changes.items()}
        params["account_id"] = account_id

        with self._cursor(writing=True) as cursor:
            cursor.execute(
                f"""
                UPDATE accounts
                SET {assignments},
                    updated_at = NOW()
                WHERE account_id = %(account_id)s
                RETURNING *
                """,
                params,
            )
            row = cursor.fetchone()
        if not row:
            raise UnresolvedAccountError(
                f"Account {account_id} does not exist", detail={"account_id": account_id}
            )
        return _row_to_account(row)

    def attach_customer_ref(self, account_id: str, customer_ref: str) -> Optional[Account]:
        """Record the provider customer for an account that has none yet."""

        with self._cursor(writing=True) as cursor:
            cursor.execute(
                """
                UPDATE accounts
                SET payment_customer_ref = COALESCE(payment_customer_ref, %s),
                    updated_at = NOW()
                WHERE account_id = %s
                RETURNING *
                """,
                (customer_ref, account_id),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None


def create_schema(connection_factory: ConnectionFactory) -> None:
    with managed_connection(connection_factory) as connection:
        with connection.cursor() as cursor:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)


__all__ = [
    "ConnectionFactory",
    "PostgresAccountRepository",
    "SCHEMA_STATEMENTS",
    "create_schema",
    "managed_connection",
]
