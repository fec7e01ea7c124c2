"""Agency-wide settings (name, currency, VAT, logo) kept in a single row."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.domain.errors import ValidationFailed
from backoffice.infrastructure.models import AgencySettingsModel
from backoffice.infrastructure.repositories import AgencySettingsRepository

EDITABLE_FIELDS = ("agency_name", "currency", "vat_percent", "logo_path")


class AgencySettingsService:
    def __init__(self, session: AsyncSession):
        self.repo = AgencySettingsRepository(session)

    async def get(self) -> AgencySettingsModel:
        return await self.repo.get_or_create()

    async def update(self, changes: dict[str, Any]) -> AgencySettingsModel:
        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        if not changes:
            raise ValidationFailed("No fields to update")
        row = await self.repo.get_or_create()
        for key, value in changes.items():
            setattr(row, key, value)
        return row
