"""Fine endpoints: catalog, listings, statistics and censor actions."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from solidarite.api.errors import ledger_http_error
from solidarite.auth_utils import get_current_member, require_roles, STAFF_ROLES
from solidarite.database import get_db
from solidarite.models.fine import FineStatus, FINE_CATALOG
from solidarite.models.member import Member, MemberRole
from solidarite.schemas import (
    FineCreate,
    FineResponse,
    FineTypeInfo,
    MemberFinesResponse,
    FineStatsResponse,
)
from solidarite.services import fine_ledger
from solidarite.services.error_logger import log_error
from solidarite.services.ledger_errors import LedgerError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/types", response_model=list[FineTypeInfo])
async def fine_types(current_member: Member = Depends(get_current_member)):
    return [
        FineTypeInfo(
            fine_type=fine_type,
            label=entry.label,
            amount=entry.amount,
            category=entry.category,
        )
        for fine_type, entry in FINE_CATALOG.items()
    ]


@router.get("/", response_model=list[FineResponse])
async def list_fines(
    status: Optional[FineStatus] = Query(None),
    member_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    try:
        return await fine_ledger.list_fines(db, status=status, member_id=member_id)
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="list_fines")
        raise


@router.get("/my", response_model=MemberFinesResponse)
async def my_fines(
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(get_current_member),
):
    try:
        return await fine_ledger.member_fine_summary(db, current_member.id)
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="my_fines")
        raise


@router.get("/stats", response_model=FineStatsResponse)
async def fine_stats(
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        return await fine_ledger.fine_statistics(db)
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="fine_stats")
        raise


@router.post("/", response_model=FineResponse, status_code=201)
async def issue_fine(
    data: FineCreate,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(MemberRole.CENSOR)),
):
    try:
        try:
            return await fine_ledger.issue_fine(
                db,
                current_member,
                data.member_id,
                data.fine_type,
                amount=data.amount,
                description=data.description,
                meeting_id=data.meeting_id,
            )
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="issue_fine")
        raise


@router.put("/{fine_id}/pay", response_model=FineResponse)
async def pay_fine(
    fine_id: int,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(MemberRole.CENSOR)),
):
    try:
        try:
            return await fine_ledger.pay_fine(db, fine_id, current_member)
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="pay_fine")
        raise


@router.put("/{fine_id}/cancel", response_model=FineResponse)
async def cancel_fine(
    fine_id: int,
    db: AsyncSession = Depends(get_db),
    current_member: Member = Depends(require_roles(MemberRole.CENSOR)),
):
    try:
        try:
            return await fine_ledger.cancel_fine(db, fine_id, current_member)
        except LedgerError as e:
            raise ledger_http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        await log_error(e, db=db, module="api.fines", function_name="cancel_fine")
        raise
