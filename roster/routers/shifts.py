"""固定班 API：案場班別查詢、新增 / 刪除、整組配置、調班、臨時班。"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas
from roster.models import SHIFT_TYPES
from roster.services import assignment_rules

router = APIRouter(prefix="/api/shifts", tags=["shifts"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "班別不存在"}}}}}
RESPONSE_409 = {
    409: {
        "description": "業務規則衝突",
        "content": {"application/json": {"example": {"detail": "保全 王小明 已排入其他案場的同班別"}}},
    }
}


@router.get("", response_model=List[schemas.ShiftRead], summary="案場班別列表（給日期時含當日臨時班）")
async def list_shifts(
    site_id: int = Query(..., description="案場 ID"),
    on_date: Optional[date] = Query(None, alias="date", description="日期"),
    shift_type: Optional[str] = Query(None, description="day / night"),
    db: AsyncSession = Depends(get_db),
):
    if shift_type and shift_type not in SHIFT_TYPES:
        raise HTTPException(status_code=400, detail=f"shift_type 須為: {list(SHIFT_TYPES)}")
    items = await crud.list_shifts_by_site(db, site_id, on_date=on_date, shift_type=shift_type)
    return [schemas.ShiftRead.model_validate(sh) for sh in items]


@router.post("", response_model=schemas.ShiftRead, status_code=201, summary="新增固定班", responses={**RESPONSE_404, **RESPONSE_409})
async def create_shift(data: schemas.ShiftCreate, db: AsyncSession = Depends(get_db)):
    if data.guard_id is None:
        raise HTTPException(status_code=400, detail="請選擇保全")
    sh = await assignment_rules.create_shift(db, data.site_id, data.guard_id, data.type)
    return schemas.ShiftRead.model_validate(sh)


@router.delete("/{shift_id}", status_code=204, summary="刪除班別", responses=RESPONSE_404)
async def delete_shift(shift_id: int, db: AsyncSession = Depends(get_db)):
    sh = await crud.get_shift(db, shift_id)
    if not sh:
        raise HTTPException(status_code=404, detail="班別不存在")
    await crud.delete_shift(db, sh)


@router.put("/allocation", response_model=List[schemas.ShiftRead], summary="整組取代某案場某班別的保全名單", responses={**RESPONSE_404, **RESPONSE_409})
async def allocate_guards(data: schemas.AllocationRequest, db: AsyncSession = Depends(get_db)):
    items = await assignment_rules.allocate_guards(
        db, data.site_id, data.shift_type, data.guard_ids, clear_attendance_on=data.clear_attendance_on,
    )
    return [schemas.ShiftRead.model_validate(sh) for sh in items]


@router.post("/reassign", response_model=schemas.ShiftRead, summary="調班：保全移到另一個班別", responses={**RESPONSE_404, **RESPONSE_409})
async def reassign_guard(data: schemas.ReassignRequest, db: AsyncSession = Depends(get_db)):
    sh = await assignment_rules.reassign_guard(db, data.from_shift_id, data.to_shift_id, on_date=data.attendance_date)
    return schemas.ShiftRead.model_validate(sh)


@router.post("/temporary", response_model=schemas.ShiftRead, status_code=201, summary="新增臨時班（單日）", responses={**RESPONSE_404, **RESPONSE_409})
async def create_temporary_shift(data: schemas.TemporaryShiftCreate, db: AsyncSession = Depends(get_db)):
    sh = await assignment_rules.create_temporary_shift(
        db,
        data.site_id,
        data.type,
        data.created_for_date,
        temporary_role=data.temporary_role,
        temporary_pay_rate=data.temporary_pay_rate,
        guard_id=data.guard_id,
    )
    return schemas.ShiftRead.model_validate(sh)


@router.post("/temporary/copy", response_model=List[schemas.ShiftRead], summary="複製臨時班到另一天（不帶保全）")
async def copy_temporary_shifts(data: schemas.CopyTemporaryShiftsRequest, db: AsyncSession = Depends(get_db)):
    items = await assignment_rules.copy_temporary_shifts(db, data.site_id, data.from_date, data.to_date)
    return [schemas.ShiftRead.model_validate(sh) for sh in items]
