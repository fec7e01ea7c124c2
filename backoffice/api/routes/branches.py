"""
GET  /api/branches -- list branches by name
POST /api/branches -- add a branch (admin)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.dependencies import get_current_user, get_db, require_admin
from backoffice.api.schemas import BranchCreateRequest, BranchResponse
from backoffice.infrastructure.models import BranchModel
from backoffice.infrastructure.repositories import BranchRepository
from backoffice.services.audit import AuditService
from backoffice.services.auth import Principal

router = APIRouter(prefix="/branches", tags=["branches"])


@router.get("", response_model=list[BranchResponse], summary="List branches")
async def list_branches(
    user: Principal = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await BranchRepository(db).list()


@router.post("", status_code=201, response_model=BranchResponse, summary="Add a branch")
async def create_branch(
    body: BranchCreateRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    branch = await BranchRepository(db).create(BranchModel(**body.model_dump()))
    AuditService(db).record(admin.id, "create", "branch", branch.id, {"name": branch.name})
    return branch
