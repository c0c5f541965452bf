from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

import psycopg2
import pytest

from booklyo.app.billing import (
    AuditLogger,
    AuditSeverity,
    EntitlementState,
    EntitlementUpdate,
    PostgresAccountRepository,
    PostgresAuditStore,
    StoreError,
    StoreWriteError,
    UnresolvedAccountError,
)
from booklyo.app.billing.repository import SCHEMA_STATEMENTS, create_schema

STAMP = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, *, fetchone_result=None, error=None):
        self.fetchone_result = fetchone_result
        self.error = error
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error

    def fetchone(self):
        return self.fetchone_result

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)
        self.cursor_calls = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        if not self._cursors:
            raise AssertionError("No cursor configured")
        return self._cursors.pop(0)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


def _row(**overrides):
    row = {
        "account_id": "acc_123",
        "contact_email": "ana@booklyo.pt",
        "entitlement_state": "pending",
        "payment_customer_ref": None,
        "payment_subscription_ref": None,
        "entitlement_updated_at": None,
        "subscription_ends_at": None,
        "last_payment_at": None,
        "last_payment_amount": None,
        "payment_failed_at": None,
        "subscription_cancelled_at": None,
        "created_at": STAMP,
        "updated_at": STAMP,
    }
    row.update(overrides)
    return row


def test_get_account_maps_row():
    cursor = FakeCursor(fetchone_result=_row(entitlement_state="active", last_payment_amount=Decimal("15.00")))
    connection = FakeConnection(cursor)

    account = PostgresAccountRepository(lambda: connection).get_account("acc_123")

    assert account.entitlement_state is EntitlementState.ACTIVE
    assert account.last_payment_amount == Decimal("15.00")
    assert cursor.execute_calls[0][1] == ("acc_123",)
    assert "WHERE account_id = %s" in cursor.execute_calls[0][0]
    assert cursor.closed and connection.committed and connection.closed


def test_get_account_missing_returns_none():
    connection = FakeConnection(FakeCursor(fetchone_result=None))

    assert PostgresAccountRepository(lambda: connection).get_account("acc_missing") is None


def test_find_by_customer_ref():
    cursor = FakeCursor(fetchone_result=_row(payment_customer_ref="cus_1"))
    connection = FakeConnection(cursor)

    account = PostgresAccountRepository(lambda: connection).find_account_by_customer_ref("cus_1")

    assert account.account_id == "acc_123"
    assert "WHERE payment_customer_ref = %s" in cursor.execute_calls[0][0]


def test_apply_entitlement_update_writes_only_given_columns():
    cursor = FakeCursor(
        fetchone_result=_row(
            entitlement_state="active",
            entitlement_updated_at=STAMP,
            payment_customer_ref="cus_1",
            payment_subscription_ref="sub_1",
        )
    )
    connection = FakeConnection(cursor)
    update = EntitlementUpdate(
        entitlement_state=EntitlementState.ACTIVE,
        entitlement_updated_at=STAMP,
        payment_customer_ref="cus_1",
        payment_subscription_ref="sub_1",
    )

    account = PostgresAccountRepository(lambda: connection).apply_entitlement_update("acc_123", update)

    query, params = cursor.execute_calls[0]
    assert query.startswith(
        "UPDATE accounts SET entitlement_state = %(entitlement_state)s, "
        "entitlement_updated_at = %(entitlement_updated_at)s, "
        "payment_customer_ref = %(payment_customer_ref)s, "
        "payment_subscription_ref = %(payment_subscription_ref)s, updated_at = NOW()"
    )
    assert "last_payment_amount" not in query
    assert params == {
        "entitlement_state": "active",
        "entitlement_updated_at": STAMP,
        "payment_customer_ref": "cus_1",
        "payment_subscription_ref": "sub_1",
        "account_id": "acc_123",
    }
    assert account.payment_subscription_ref == "sub_1"
    assert connection.committed


def test_apply_entitlement_update_missing_row():
    connection = FakeConnection(FakeCursor(fetchone_result=None))
    update = EntitlementUpdate(entitlement_state=EntitlementState.EXPIRED, entitlement_updated_at=STAMP)

    with pytest.raises(UnresolvedAccountError):
        PostgresAccountRepository(lambda: connection).apply_entitlement_update("acc_missing", update)


def test_database_error_on_write_is_store_write_error():
    connection = FakeConnection(FakeCursor(error=psycopg2.OperationalError("server closed the connection")))
    update = EntitlementUpdate(entitlement_state=EntitlementState.EXPIRED, entitlement_updated_at=STAMP)

    with pytest.raises(StoreWriteError):
        PostgresAccountRepository(lambda: connection).apply_entitlement_update("acc_123", update)

    assert connection.rolled_back
    assert not connection.committed
    assert connection.closed


def test_database_error_on_read_is_store_error():
    connection = FakeConnection(FakeCursor(error=psycopg2.OperationalError("timeout")))

    with pytest.raises(StoreError) as excinfo:
        PostgresAccountRepository(lambda: connection).get_account("acc_123")

    assert not isinstance(excinfo.value, StoreWriteError)


def test_attach_customer_ref_keeps_existing_value():
    cursor = FakeCursor(fetchone_result=_row(payment_customer_ref="cus_1"))
    connection = FakeConnection(cursor)

    account = PostgresAccountRepository(lambda: connection).attach_customer_ref("acc_123", "cus_1")

    assert "COALESCE(payment_customer_ref, %s)" in cursor.execute_calls[0][0]
    assert cursor.execute_calls[0][1] == ("cus_1", "acc_123")
    assert account.payment_customer_ref == "cus_1"


def test_attach_customer_ref_conflict_is_store_write_error():
    connection = FakeConnection(
        FakeCursor(error=psycopg2.IntegrityError("duplicate key value violates unique constraint"))
    )

    with pytest.raises(StoreWriteError):
        PostgresAccountRepository(lambda: connection).attach_customer_ref("acc_123", "cus_456")

    assert connection.rolled_back


def test_create_schema_runs_every_statement():
    cursor = FakeCursor()
    connection = FakeConnection(cursor)

    create_schema(lambda: connection)

    assert len(cursor.execute_calls) == len(SCHEMA_STATEMENTS)
    assert connection.committed


def test_audit_store_appends_row():
    cursor = FakeCursor()
    connection = FakeConnection(cursor)
    audit = AuditLogger(PostgresAuditStore(lambda: connection))

    entry = audit.record(
        "payment.payment.failed",
        severity=AuditSeverity.WARNING,
        data={"account_id": "acc_123", "error": None},
    )

    query, params = cursor.execute_calls[0]
    assert query.startswith("INSERT INTO audit_logs")
    assert params[0] == "payment.payment.failed"
    assert params[1] == "warning"
    assert params[2] == "stripe-webhook"
    assert params[3].adapted == {"account_id": "acc_123"}
    assert entry.data == {"account_id": "acc_123"}
    assert connection.committed


def test_audit_failure_is_logged_not_raised(caplog):
    def _broken_connection():
        raise psycopg2.OperationalError("could not connect")

    audit = AuditLogger(PostgresAuditStore(_broken_connection))

    with caplog.at_level(logging.ERROR, logger="booklyo.audit"):
        entry = audit.record("payment.webhook.error", severity=AuditSeverity.ERROR, data={"error": "boom"})

    assert entry.event_type == "payment.webhook.error"
    assert "Failed to persist audit entry" in caplog.text
