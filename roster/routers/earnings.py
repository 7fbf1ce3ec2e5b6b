"""月收入彙總 API：保全、案場、全部保全與 Excel 匯出。"""
import io
from typing import List
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import schemas
from roster.accounting.earnings_export import build_earnings_excel
from roster.services import earnings
from roster.utils.http_headers import XLSX_MEDIA_TYPE, xlsx_download_headers

router = APIRouter(prefix="/api/earnings", tags=["earnings"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "保全不存在"}}}}}


@router.get("/guards", response_model=List[schemas.GuardMonthlyEarnings], summary="全部保全月收入")
async def all_guards_earnings(
    year: int = Query(..., ge=2000, le=2100, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    db: AsyncSession = Depends(get_db),
):
    return await earnings.get_all_guards_monthly_earnings(db, year, month)


@router.get("/guards/export", summary="全部保全月收入匯出 Excel")
async def export_guards_earnings(
    year: int = Query(..., ge=2000, le=2100, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    db: AsyncSession = Depends(get_db),
):
    rows = await earnings.get_all_guards_monthly_earnings(db, year, month)
    content = build_earnings_excel(rows, year, month)
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers=xlsx_download_headers(f"guard_earnings_{year}_{month:02d}.xlsx", f"保全收入_{year}_{month:02d}.xlsx"),
    )


@router.get("/guards/{guard_id}", response_model=schemas.GuardMonthlyEarnings, summary="保全月收入", responses=RESPONSE_404)
async def guard_earnings(
    guard_id: int,
    year: int = Query(..., ge=2000, le=2100, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    db: AsyncSession = Depends(get_db),
):
    return await earnings.get_guard_monthly_earnings(db, guard_id, year, month)


@router.get("/guards/{guard_id}/shift-summary", response_model=schemas.GuardMonthlyShiftSummary, summary="保全月班數統計", responses=RESPONSE_404)
async def guard_shift_summary(
    guard_id: int,
    year: int = Query(..., ge=2000, le=2100, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    db: AsyncSession = Depends(get_db),
):
    return await earnings.guard_monthly_shift_summary(db, guard_id, year, month)


@router.get("/sites/{site_id}", response_model=schemas.SiteMonthlyEarnings, summary="案場月收支", responses=RESPONSE_404)
async def site_earnings(
    site_id: int,
    year: int = Query(..., ge=2000, le=2100, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    db: AsyncSession = Depends(get_db),
):
    return await earnings.get_site_monthly_earnings(db, site_id, year, month)
