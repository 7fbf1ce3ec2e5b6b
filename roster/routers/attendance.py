"""出勤 API（固定班模式）：點名、取消點名、代班、批次、複製、重設、統計。"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas
from roster.services import attendance_reconciler

router = APIRouter(prefix="/api/attendance", tags=["attendance"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "出勤紀錄不存在"}}}}}
RESPONSE_409 = {
    409: {
        "description": "業務規則衝突",
        "content": {"application/json": {"example": {"detail": "該班別出勤人數已達上限 2 人"}}},
    }
}


@router.get("", response_model=List[schemas.AttendanceRecordRead], summary="某日出勤紀錄（可限定案場）")
async def list_attendance(
    on_date: date = Query(..., alias="date", description="日期"),
    site_id: Optional[int] = Query(None, description="案場 ID"),
    db: AsyncSession = Depends(get_db),
):
    if site_id is not None:
        records = await crud.list_attendance_by_site_and_date(db, site_id, on_date)
    else:
        records = await crud.list_attendance_by_date(db, on_date)
    return [schemas.AttendanceRecordRead.model_validate(r) for r in records]


@router.get("/summary", response_model=schemas.AttendanceSummary, summary="案場某日出勤統計（日班 / 夜班）")
async def attendance_summary(
    site_id: int = Query(..., description="案場 ID"),
    on_date: date = Query(..., alias="date", description="日期"),
    db: AsyncSession = Depends(get_db),
):
    return await attendance_reconciler.attendance_summary(db, site_id, on_date)


@router.post("/mark", response_model=schemas.AttendanceRecordRead, summary="點名（present / absent）", responses={**RESPONSE_404, **RESPONSE_409})
async def mark_attendance(data: schemas.AttendanceMarkRequest, db: AsyncSession = Depends(get_db)):
    rec = await attendance_reconciler.mark_shift_attendance(
        db, data.site_id, data.guard_id, data.attendance_date, data.shift_type, data.status, notes=data.notes,
    )
    return schemas.AttendanceRecordRead.model_validate(rec)


@router.post("/unmark", status_code=204, summary="取消點名（刪除出勤紀錄）", responses=RESPONSE_404)
async def unmark_attendance(data: schemas.AttendanceUnmarkRequest, db: AsyncSession = Depends(get_db)):
    await attendance_reconciler.unmark_attendance(db, data.site_id, data.guard_id, data.attendance_date, data.shift_type)


@router.post("/replace", response_model=List[schemas.AttendanceRecordRead], summary="代班：原保全記 replaced，代班者記 present", responses={**RESPONSE_404, **RESPONSE_409})
async def mark_replaced(data: schemas.AttendanceReplaceRequest, db: AsyncSession = Depends(get_db)):
    records = await attendance_reconciler.mark_replaced(
        db,
        data.site_id,
        data.guard_id,
        data.attendance_date,
        data.shift_type,
        data.replacement_guard_id,
        notes=data.notes,
    )
    return [schemas.AttendanceRecordRead.model_validate(r) for r in records]


@router.post("/bulk", response_model=schemas.BulkResult, summary="批次點名（單筆失敗不影響其他）")
async def bulk_mark(data: schemas.BulkMarkRequest, db: AsyncSession = Depends(get_db)):
    return await attendance_reconciler.bulk_mark_attendance(
        db, data.site_id, data.attendance_date, data.shift_type, data.guard_ids, data.status,
    )


@router.post("/copy", response_model=schemas.CopyAttendanceResult, summary="複製某日出勤到另一天", responses=RESPONSE_404)
async def copy_attendance(data: schemas.CopyAttendanceRequest, db: AsyncSession = Depends(get_db)):
    copied, skipped = await attendance_reconciler.copy_attendance_from_date(db, data.site_id, data.from_date, data.to_date)
    return schemas.CopyAttendanceResult(
        copied=len(copied),
        skipped=len(skipped),
        skipped_guard_ids=skipped,
        records=[schemas.AttendanceRecordRead.model_validate(r) for r in copied],
    )


@router.post("/reset", summary="重設案場某日出勤（刪除全部 present，不可復原）")
async def reset_attendance(data: schemas.ResetAttendanceRequest, db: AsyncSession = Depends(get_db)):
    deleted = await attendance_reconciler.reset_attendance(db, data.site_id, data.attendance_date)
    return {"deleted": deleted}


@router.post("/{record_id}/approve", response_model=schemas.AttendanceRecordRead, summary="核可出勤紀錄", responses=RESPONSE_404)
async def approve_attendance(
    record_id: int,
    approved_by: str = Query(..., min_length=1, description="核可人"),
    db: AsyncSession = Depends(get_db),
):
    rec = await crud.get_attendance_record(db, record_id)
    if not rec:
        raise HTTPException(status_code=404, detail="出勤紀錄不存在")
    rec = await crud.approve_attendance_record(db, rec, approved_by)
    return schemas.AttendanceRecordRead.model_validate(rec)
