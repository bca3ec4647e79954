"""Audit trail for billing lifecycle events (period transitions, reading edits)."""

from typing import Any

from sqlalchemy.orm import Session

from src.models.audit_log import AuditLog


class AuditService:
    """Writes and reads audit entries.

    log() only adds the entry to the caller's session. It is committed or
    rolled back together with the change it describes.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Record one event.

        Args:
            db: Session of the surrounding transaction
            entity_type: "period" or "reading"
            entity_id: Id of the period or reading
            action: "create", "close_readings", "record_receipt", "calculate", "reopen", ...
            actor_id: Acting user, None for system actions
            changes: JSON-serializable details of the event

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(entity_type=entity_type, entity_id=entity_id, action=action)
        entry.actor_id = actor_id
        entry.changes = changes
        db.add(entry)
        return entry

    @staticmethod
    def get_entries(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Entries for one entity in the order they were written."""
        query = db.query(AuditLog).filter(
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
        )
        return query.order_by(AuditLog.id.asc()).all()


__all__ = ["AuditService"]
