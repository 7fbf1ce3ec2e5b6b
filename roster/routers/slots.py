"""每日 slot API：產生 / 重新產生 / 沿用前一日、指派保全、點名、臨時 slot。"""
from datetime import date
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas
from roster.services import assignment_rules, attendance_reconciler, slot_generator

router = APIRouter(prefix="/api/slots", tags=["slots"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "slot 不存在"}}}}}
RESPONSE_409 = {
    409: {
        "description": "業務規則衝突",
        "content": {"application/json": {"example": {"detail": "保全 王小明 當日該班別已在其他案場出勤"}}},
    }
}


def _slot_with_guard(slot) -> schemas.SlotWithGuard:
    """slot 需已 selectinload assigned_guard"""
    out = schemas.SlotWithGuard.model_validate(slot)
    if slot.assigned_guard is not None:
        out.guard_name = slot.assigned_guard.name
        out.badge_number = slot.assigned_guard.badge_number
    return out


@router.get("", response_model=List[schemas.SlotWithGuard], summary="案場某日 slot 列表")
async def list_slots(
    site_id: int = Query(..., description="案場 ID"),
    on_date: date = Query(..., alias="date", description="日期"),
    db: AsyncSession = Depends(get_db),
):
    slots = await crud.list_slots_by_site_and_date(db, site_id, on_date, load_guard=True)
    return [_slot_with_guard(s) for s in slots]


@router.post("/generate", response_model=List[schemas.SlotWithGuard], summary="產生某日 slot（已存在則直接回傳）", responses=RESPONSE_404)
async def generate_slots(data: schemas.SlotDateRequest, db: AsyncSession = Depends(get_db)):
    slots = await slot_generator.generate_slots_for_date(db, data.site_id, data.attendance_date)
    return [_slot_with_guard(s) for s in slots]


@router.post("/regenerate", response_model=schemas.RegenerateResult, summary="依目前人力設定補齊 slot（不刪除既有 slot）", responses=RESPONSE_404)
async def regenerate_slots(data: schemas.SlotDateRequest, db: AsyncSession = Depends(get_db)):
    created, excess, slots = await slot_generator.regenerate_slots_for_date(db, data.site_id, data.attendance_date)
    return schemas.RegenerateResult(
        created=[schemas.SlotRead.model_validate(s) for s in created],
        excess_slot_ids=excess,
        slots=[schemas.SlotRead.model_validate(s) for s in slots],
    )


@router.post("/copy-previous", response_model=schemas.CopySlotsResult, summary="沿用前一日指派並標記出勤", responses=RESPONSE_404)
async def copy_previous_day(data: schemas.CopySlotsRequest, db: AsyncSession = Depends(get_db)):
    copied, skipped, slots = await slot_generator.copy_slots_from_previous_day(
        db, data.site_id, data.current_date, previous_date=data.previous_date,
    )
    return schemas.CopySlotsResult(
        copied=copied,
        skipped=len(skipped),
        skipped_guard_ids=skipped,
        slots=[schemas.SlotRead.model_validate(s) for s in slots],
    )


@router.post("/mark-all-present", response_model=schemas.BulkResult, summary="已指派 slot 全部標記出勤")
async def mark_all_present(data: schemas.SlotDateRequest, db: AsyncSession = Depends(get_db)):
    return await attendance_reconciler.mark_all_assigned_present(db, data.site_id, data.attendance_date)


@router.post("/temporary", response_model=schemas.SlotRead, status_code=201, summary="新增臨時 slot（不計人力上限）", responses=RESPONSE_404)
async def create_temporary_slot(data: schemas.TemporarySlotCreate, db: AsyncSession = Depends(get_db)):
    slot = await attendance_reconciler.create_temporary_slot(
        db, data.site_id, data.attendance_date, data.shift_type, data.role_type, pay_rate=data.pay_rate,
    )
    return schemas.SlotRead.model_validate(slot)


@router.delete("/{slot_id}", status_code=204, summary="刪除臨時 slot（有指派者先取消指派）", responses=RESPONSE_404)
async def delete_temporary_slot(slot_id: int, db: AsyncSession = Depends(get_db)):
    await attendance_reconciler.delete_temporary_slot(db, slot_id)


@router.get("/{slot_id}/available-guards", response_model=List[schemas.GuardRead], summary="可指派保全（目前指派者在前，其餘依姓名）", responses=RESPONSE_404)
async def available_guards(slot_id: int, db: AsyncSession = Depends(get_db)):
    guards = await assignment_rules.list_available_guards_for_slot(db, slot_id)
    return [schemas.GuardRead.model_validate(g) for g in guards]


@router.put("/{slot_id}/guard", response_model=schemas.SlotRead, summary="指派 / 更換 slot 保全", responses={**RESPONSE_404, **RESPONSE_409})
async def assign_guard(slot_id: int, data: schemas.SlotAssignRequest, db: AsyncSession = Depends(get_db)):
    slot = await assignment_rules.assign_guard_to_slot(db, slot_id, data.guard_id)
    return schemas.SlotRead.model_validate(slot)


@router.delete("/{slot_id}/guard", response_model=schemas.SlotRead, summary="取消指派（連同出勤標記）", responses=RESPONSE_404)
async def unassign_guard(slot_id: int, db: AsyncSession = Depends(get_db)):
    slot = await assignment_rules.unassign_guard_from_slot(db, slot_id)
    return schemas.SlotRead.model_validate(slot)


@router.put("/{slot_id}/attendance", response_model=schemas.SlotRead, summary="slot 點名（出勤 / 缺勤）", responses={**RESPONSE_404, **RESPONSE_409})
async def mark_slot(slot_id: int, data: schemas.SlotMarkRequest, db: AsyncSession = Depends(get_db)):
    slot = await attendance_reconciler.mark_slot_attendance(db, slot_id, data.is_present)
    return schemas.SlotRead.model_validate(slot)
