"""Audit trail for mutations of bookings, cars and other fleet records."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.infrastructure.models import AuditLogModel
from backoffice.infrastructure.repositories import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditService:
    """Adds audit rows to the caller's unit of work.

    The row commits or rolls back together with the write it describes.
    A metadata payload that cannot be encoded is logged and dropped; it
    never fails the primary write.
    """

    def __init__(self, session: AsyncSession):
        self.repo = AuditLogRepository(session)

    def record(
        self,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: Any = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditLogModel]:
        try:
            payload = jsonable_encoder(metadata or {})
            json.dumps(payload)
        except (TypeError, ValueError):
            logger.warning(
                "Skipping audit entry %s %s/%s: metadata not serialisable",
                action, entity_type, entity_id,
            )
            return None

        entry = AuditLogModel(
            user_id=actor_id or None,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            metadata_json=payload,
        )
        self.repo.add(entry)
        return entry
