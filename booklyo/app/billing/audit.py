"""Append-only audit trail for provider notifications."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

import psycopg2.extras

from .models import AuditLogEntry, AuditSeverity
from .repository import ConnectionFactory, managed_connection

logger = logging.getLogger("booklyo.audit")


class AuditStore(Protocol):
    """Persistence for audit records. Implementations never update or delete."""

    def append(self, entry: AuditLogEntry) -> None:
        ...


class PostgresAuditStore:
    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory

    def append(self, entry: AuditLogEntry) -> None:
        with managed_connection(self._connection_factory) as connection:
            with connection.cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO audit_logs (event_type, severity, source, data, created_at)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        entry.event_type,
                        entry.severity.value,
                        entry.source,
                        psycopg2.extras.Json(entry.data, dumps=_dumps),
                        entry.timestamp,
                    ),
                )


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class AuditLogger:
    """Best-effort audit writer.

    A failed write is reported on the process log and swallowed so that the
    reconciliation it describes is never aborted by it.
    """

    def __init__(self, store: AuditStore, *, fallback: Optional[logging.Logger] = None) -> None:
        self._store = store
        self._fallback = fallback or logger

    def record(
        self,
        event_type: str,
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
        data: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            event_type=event_type,
            severity=severity,
            data={key: value for key, value in (data or {}).items() if value is not None},
        )
        try:
            self._store.append(entry)
        except Exception:  # noqa: BLE001 - audit failures must not fail the request
            self._fallback.exception(
                "Failed to persist audit entry",
                extra={"audit_event_type": entry.event_type, "audit_data": entry.data},
            )
        return entry


__all__ = ["AuditLogger", "AuditStore", "PostgresAuditStore"]
