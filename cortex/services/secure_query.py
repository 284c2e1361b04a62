"""Read-only gate for SQL written by the assistant.

Fail-closed: a query runs only if it starts with SELECT and none of the
mutating keywords appears anywhere in it. The keyword check is a plain
substring match, so the words are rejected inside string literals, comments
and identifiers too (e.g. a column named "created_at" is refused because it
contains CREATE). This is not a SQL parser; production deployments should
still point DATABASE_URL at a role with SELECT-only grants.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS = ("DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "TRUNCATE", "CREATE", "GRANT", "REVOKE")


@dataclass
class SecureQueryResult:
    success: bool
    data: list[dict[str, Any]] | None = None
    error: str | None = None
    row_count: int | None = None

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        if self.row_count is not None:
            payload["rowCount"] = self.row_count
        return payload


def validate_query(query: str) -> str | None:
    """Return the rejection reason, or None when the query may run."""
    normalized = (query or "").strip().upper()
    if not normalized.startswith("SELECT"):
        return "Apenas consultas SELECT são permitidas."
    for keyword in FORBIDDEN_KEYWORDS:
        if keyword in normalized:
            return f"Consulta contém operação não permitida: {keyword}"
    return None


def execute_secure_query(db: Session, query: str) -> SecureQueryResult:
    reason = validate_query(query)
    if reason:
        logger.warning("Rejected assistant query: %s", reason)
        return SecureQueryResult(success=False, error=reason)

    try:
        # driver-level execution: the text is sent as-is, no bind-param parsing
        result = db.connection().exec_driver_sql(query.strip())
        rows = [dict(row._mapping) for row in result]
    except SQLAlchemyError as exc:
        db.rollback()
        message = str(getattr(exc, "orig", None) or exc)
        logger.warning("Assistant query failed: %s", message)
        return SecureQueryResult(success=False, error=message)

    return SecureQueryResult(success=True, data=rows, row_count=len(rows))
