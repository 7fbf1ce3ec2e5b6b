"""保全員 API：CRUD、個人固定班 / slot / 出勤查詢。"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas
from roster.models import GUARD_STATUSES, GUARD_TYPES
from roster.services import attendance_reconciler

router = APIRouter(prefix="/api/guards", tags=["guards"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "保全不存在"}}}}}
RESPONSE_409 = {409: {"description": "員工編號重複", "content": {"application/json": {"example": {"detail": "員工編號已存在"}}}}}


async def _get_guard_or_404(db: AsyncSession, guard_id: int):
    guard = await crud.get_guard(db, guard_id)
    if not guard:
        raise HTTPException(status_code=404, detail="保全不存在")
    return guard


def _check_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="結束日不可早於起始日")


@router.get("", response_model=List[schemas.GuardRead], summary="保全列表")
async def list_guards(
    status: Optional[str] = Query(None, description="active / inactive"),
    type: Optional[str] = Query(None, description="permanent / temporary"),
    q: Optional[str] = Query(None, description="姓名或員工編號關鍵字"),
    db: AsyncSession = Depends(get_db),
):
    if status and status not in GUARD_STATUSES:
        raise HTTPException(status_code=400, detail=f"status 須為: {list(GUARD_STATUSES)}")
    if type and type not in GUARD_TYPES:
        raise HTTPException(status_code=400, detail=f"type 須為: {list(GUARD_TYPES)}")
    items = await crud.list_guards(db, status=status, guard_type=type, q=q)
    return [schemas.GuardRead.model_validate(g) for g in items]


@router.get("/{guard_id}", response_model=schemas.GuardRead, summary="取得單一保全", responses=RESPONSE_404)
async def get_guard(guard_id: int, db: AsyncSession = Depends(get_db)):
    return schemas.GuardRead.model_validate(await _get_guard_or_404(db, guard_id))


@router.post("", response_model=schemas.GuardRead, status_code=201, summary="新增保全", responses=RESPONSE_409)
async def create_guard(data: schemas.GuardCreate, db: AsyncSession = Depends(get_db)):
    guard = await crud.create_guard(db, data)
    return schemas.GuardRead.model_validate(guard)


@router.patch("/{guard_id}", response_model=schemas.GuardRead, summary="更新保全", responses={**RESPONSE_404, **RESPONSE_409})
async def update_guard(guard_id: int, data: schemas.GuardUpdate, db: AsyncSession = Depends(get_db)):
    guard = await _get_guard_or_404(db, guard_id)
    guard = await crud.update_guard(db, guard, data)
    return schemas.GuardRead.model_validate(guard)


@router.delete("/{guard_id}", status_code=204, summary="刪除保全（一併刪除班別、出勤、獎懲，並釋出 slot）", responses=RESPONSE_404)
async def delete_guard(guard_id: int, db: AsyncSession = Depends(get_db)):
    guard = await _get_guard_or_404(db, guard_id)
    await crud.delete_guard(db, guard)


@router.get("/{guard_id}/shifts", response_model=List[schemas.ShiftRead], summary="保全的固定班 / 臨時班", responses=RESPONSE_404)
async def list_guard_shifts(guard_id: int, db: AsyncSession = Depends(get_db)):
    await _get_guard_or_404(db, guard_id)
    return [schemas.ShiftRead.model_validate(sh) for sh in await crud.list_shifts_by_guard(db, guard_id)]


@router.get("/{guard_id}/slots", response_model=List[schemas.SlotRead], summary="保全期間內被指派的 slot", responses=RESPONSE_404)
async def list_guard_slots(
    guard_id: int,
    start_date: date = Query(..., description="起始日"),
    end_date: date = Query(..., description="結束日（含）"),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    await _get_guard_or_404(db, guard_id)
    slots = await crud.list_slots_by_guard_and_date_range(db, guard_id, start_date, end_date)
    return [schemas.SlotRead.model_validate(s) for s in slots]


@router.get("/{guard_id}/attendance", response_model=List[schemas.AttendanceRecordRead], summary="保全期間內出勤紀錄", responses=RESPONSE_404)
async def list_guard_attendance(
    guard_id: int,
    start_date: date = Query(..., description="起始日"),
    end_date: date = Query(..., description="結束日（含）"),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    await _get_guard_or_404(db, guard_id)
    records = await crud.list_attendance_by_guard_and_date_range(db, guard_id, start_date, end_date)
    return [schemas.AttendanceRecordRead.model_validate(r) for r in records]


@router.get("/{guard_id}/attendance-stats", response_model=schemas.GuardAttendanceStats, summary="保全期間內出勤統計", responses=RESPONSE_404)
async def guard_attendance_stats(
    guard_id: int,
    start_date: date = Query(..., description="起始日"),
    end_date: date = Query(..., description="結束日（含）"),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    await _get_guard_or_404(db, guard_id)
    return await attendance_reconciler.guard_attendance_stats(db, guard_id, start_date, end_date)
