"""
指派規則：保全 → slot、保全 → 固定班。

寫入前一律先查衝突（同日同班別已在他案場出勤、或已佔用其他 slot / 同班別固定班），有衝突即丟 ConflictError，不寫入。
查詢與寫入之間沒有鎖；真正的「一人一日一班別只能一筆 present」由 attendance_records 的 partial unique index 把關。
"""
import logging
from datetime import date
from typing import List, Optional, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from roster import crud
from roster.crud import ConflictError, NotFoundError, RuleValidationError
from roster.models import Guard, Shift, DailyAttendanceSlot

logger = logging.getLogger(__name__)


async def is_guard_present_elsewhere(
    db: AsyncSession,
    guard_id: int,
    on_date: date,
    shift_type: str,
    site_id: int,
) -> bool:
    """保全同日同班別是否已在其他案場 present"""
    rows = await crud.find_present_elsewhere(db, guard_id, on_date, shift_type, exclude_site_id=site_id)
    return len(rows) > 0


async def _require_active_guard(db: AsyncSession, guard_id: int) -> Guard:
    guard = await crud.get_guard(db, guard_id)
    if not guard:
        raise NotFoundError("保全不存在")
    if guard.status != "active":
        raise RuleValidationError(f"保全 {guard.name} 非在職狀態，不可指派")
    return guard


def order_guards_for_selection(guards: Iterable[Guard], selected_ids: Iterable[int]) -> List[Guard]:
    """選擇清單排序：已選（已指派）者在前，其餘依姓名。"""
    selected = set(selected_ids)
    return sorted(guards, key=lambda g: (g.id not in selected, (g.name or "").lower(), g.id))


# ---------- slot 指派 ----------
async def assign_guard_to_slot(db: AsyncSession, slot_id: int, guard_id: int) -> DailyAttendanceSlot:
    """
    指派保全到 slot。
    - 同一保全重複指派同一 slot：不變動、直接回傳。
    - 換人：前一位保全在此 slot 的出勤紀錄一併刪除，is_present 回到未點名。
    - 衝突：同日同班別已佔用其他 slot、已在他案場 present，或在他案場有同班別的班別。
    """
    slot = await crud.get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("slot 不存在")
    guard = await _require_active_guard(db, guard_id)
    if slot.assigned_guard_id == guard_id:
        return slot

    taken = await crud.find_guard_slots_on(db, guard_id, slot.attendance_date, slot.shift_type, exclude_slot_id=slot.id)
    if taken:
        logger.warning("保全 %s 於 %s %s 已指派至 slot %s", guard_id, slot.attendance_date, slot.shift_type, taken[0].id)
        raise ConflictError(f"保全 {guard.name} 當日該班別已指派至其他 slot")
    if await is_guard_present_elsewhere(db, guard_id, slot.attendance_date, slot.shift_type, slot.site_id):
        logger.warning("保全 %s 於 %s %s 已在其他案場出勤", guard_id, slot.attendance_date, slot.shift_type)
        raise ConflictError(f"保全 {guard.name} 當日該班別已在其他案場出勤")
    if await crud.find_guard_shifts_elsewhere(
        db, guard_id, slot.shift_type, exclude_site_id=slot.site_id, on_date=slot.attendance_date,
    ):
        logger.warning("保全 %s 已排入其他案場的 %s 班", guard_id, slot.shift_type)
        raise ConflictError(f"保全 {guard.name} 已排入其他案場的同班別")

    if slot.assigned_guard_id is not None:
        await crud.delete_attendance_for_slot(db, slot)
        logger.info("slot %s 改派：%s → %s", slot.id, slot.assigned_guard_id, guard_id)
    slot.assigned_guard_id = guard_id
    slot.is_present = None
    slot = await crud.save_slot(db, slot)
    logger.info("slot %s 指派保全 %s", slot.id, guard_id)
    return slot


async def unassign_guard_from_slot(db: AsyncSession, slot_id: int) -> DailyAttendanceSlot:
    """取消指派：連同該 slot 的出勤標記（present / absent）一併清除。"""
    slot = await crud.get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("slot 不存在")
    if slot.assigned_guard_id is None:
        return slot
    removed = await crud.delete_attendance_for_slot(db, slot)
    guard_id = slot.assigned_guard_id
    slot.assigned_guard_id = None
    slot.is_present = None
    slot = await crud.save_slot(db, slot)
    logger.info("slot %s 取消指派保全 %s（清除出勤 %s 筆）", slot.id, guard_id, removed)
    return slot


async def list_available_guards_for_slot(db: AsyncSession, slot_id: int) -> List[Guard]:
    """可指派清單：在職、同日同班別未佔用其他 slot、也沒排在他案場同班別；目前指派者排第一。"""
    slot = await crud.get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("slot 不存在")
    guards = await crud.list_guards(db, status="active")
    busy = set()
    for g in guards:
        if g.id == slot.assigned_guard_id:
            continue
        if await crud.find_guard_slots_on(db, g.id, slot.attendance_date, slot.shift_type, exclude_slot_id=slot.id):
            busy.add(g.id)
        elif await crud.find_guard_shifts_elsewhere(
            db, g.id, slot.shift_type, exclude_site_id=slot.site_id, on_date=slot.attendance_date,
        ):
            busy.add(g.id)
    available = [g for g in guards if g.id not in busy]
    current = [slot.assigned_guard_id] if slot.assigned_guard_id else []
    return order_guards_for_selection(available, current)


# ---------- 固定班 ----------
async def _check_shift_conflict(
    db: AsyncSession,
    guard: Guard,
    site_id: int,
    shift_type: str,
    on_date: Optional[date] = None,
) -> None:
    elsewhere = await crud.find_guard_shifts_elsewhere(db, guard.id, shift_type, exclude_site_id=site_id, on_date=on_date)
    if elsewhere:
        logger.warning("保全 %s 已有案場 %s 的 %s 班", guard.id, elsewhere[0].site_id, shift_type)
        raise ConflictError(f"保全 {guard.name} 已排入其他案場的同班別")
    if on_date is not None and await is_guard_present_elsewhere(db, guard.id, on_date, shift_type, site_id):
        raise ConflictError(f"保全 {guard.name} 當日該班別已在其他案場出勤")


async def create_shift(db: AsyncSession, site_id: int, guard_id: int, shift_type: str) -> Shift:
    """新增固定班；同保全同班別已排在其他案場或本案場重複時為衝突。"""
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    guard = await _require_active_guard(db, guard_id)
    if await crud.find_guard_shift(db, site_id, guard_id, shift_type):
        raise ConflictError(f"保全 {guard.name} 已在本案場此班別")
    await _check_shift_conflict(db, guard, site_id, shift_type)
    sh = await crud.insert_shift(db, site_id=site_id, guard_id=guard_id, type=shift_type, is_temporary=False)
    logger.info("新增固定班 %s：案場 %s 保全 %s %s", sh.id, site_id, guard_id, shift_type)
    return sh


async def allocate_guards(
    db: AsyncSession,
    site_id: int,
    shift_type: str,
    guard_ids: List[int],
    clear_attendance_on: Optional[date] = None,
) -> List[Shift]:
    """
    整組取代某案場某班別的固定班（full replace，不做 diff）。
    先驗證整份名單（存在、在職、不與他案場同班別衝突），通過才先刪後建。
    clear_attendance_on 有值時，被移出名單的保全於該日在本案場的 present 紀錄一併刪除。
    """
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    unique_ids = list(dict.fromkeys(guard_ids))
    for gid in unique_ids:
        guard = await _require_active_guard(db, gid)
        await _check_shift_conflict(db, guard, site_id, shift_type)

    previous = await crud.list_shifts_by_site(db, site_id, shift_type=shift_type)
    removed = [sh.guard_id for sh in previous if sh.guard_id is not None and sh.guard_id not in unique_ids]
    created = await crud.replace_shifts_for_site(db, site_id, shift_type, unique_ids)
    if clear_attendance_on is not None and removed:
        n = await crud.delete_present_records_for_guards(db, site_id, clear_attendance_on, shift_type, removed)
        logger.info("案場 %s %s 移除保全 %s，刪除 %s 出勤 %s 筆", site_id, shift_type, removed, clear_attendance_on, n)
    logger.info("案場 %s %s 班重新配置 %s 人", site_id, shift_type, len(created))
    return created


async def reassign_guard(
    db: AsyncSession,
    from_shift_id: int,
    to_shift_id: int,
    on_date: Optional[date] = None,
) -> Shift:
    """
    把保全從一個班別移到另一個（未指派或臨時）班別；目標班別若已有人則衝突。
    跨案場且有日期（on_date 或目標臨時班日期）時，原案場當日記一筆 reassigned（reassigned_site_id = 目標案場），
    原案場當日的 slot 一併取消指派。
    """
    src = await crud.get_shift(db, from_shift_id)
    dst = await crud.get_shift(db, to_shift_id)
    if not src or not dst:
        raise NotFoundError("班別不存在")
    if src.guard_id is None:
        raise RuleValidationError("來源班別沒有指派保全")
    if dst.guard_id is not None and dst.guard_id != src.guard_id:
        raise ConflictError("目標班別已有保全")
    guard = await _require_active_guard(db, src.guard_id)
    if dst.site_id != src.site_id or dst.type != src.type:
        others = await crud.find_guard_shifts_elsewhere(
            db, guard.id, dst.type, exclude_site_id=dst.site_id, on_date=dst.created_for_date,
        )
        if [sh for sh in others if sh.id != src.id]:
            raise ConflictError(f"保全 {guard.name} 已排入其他案場的同班別")
    move_date = on_date or dst.created_for_date
    if move_date is not None:
        present = await crud.find_present_elsewhere(db, guard.id, move_date, dst.type, exclude_site_id=dst.site_id)
        # 原案場當日的 present 會改為 reassigned，不算衝突
        if [r for r in present if not (r.site_id == src.site_id and r.shift_type == src.type)]:
            raise ConflictError(f"保全 {guard.name} 當日該班別已在其他案場出勤")
    dst.guard_id = guard.id
    src.guard_id = None
    await crud.save_shifts(db, src, dst)
    logger.info("保全 %s 由班別 %s 移至 %s", guard.id, src.id, dst.id)

    if move_date is not None and dst.site_id != src.site_id:
        for slot in await crud.find_guard_slots_on(db, guard.id, move_date, src.type):
            if slot.site_id == src.site_id:
                await unassign_guard_from_slot(db, slot.id)
        await crud.upsert_attendance_record(
            db,
            guard_id=guard.id,
            site_id=src.site_id,
            on_date=move_date,
            shift_type=src.type,
            status="reassigned",
            shift_id=src.id,
            reassigned_site_id=dst.site_id,
        )
        logger.info("保全 %s 於 %s 由案場 %s 調往 %s", guard.id, move_date, src.site_id, dst.site_id)
    return dst


async def create_temporary_shift(
    db: AsyncSession,
    site_id: int,
    shift_type: str,
    created_for_date: date,
    temporary_role: Optional[str] = None,
    temporary_pay_rate=None,
    guard_id: Optional[int] = None,
) -> Shift:
    """臨時班：只在 created_for_date 當天有效，不計入案場人力上限。"""
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    if guard_id is not None:
        guard = await _require_active_guard(db, guard_id)
        if await crud.find_guard_shift(db, site_id, guard_id, shift_type, on_date=created_for_date):
            raise ConflictError(f"保全 {guard.name} 當日已在本案場此班別")
        await _check_shift_conflict(db, guard, site_id, shift_type, on_date=created_for_date)
    sh = await crud.insert_shift(
        db,
        site_id=site_id,
        guard_id=guard_id,
        type=shift_type,
        is_temporary=True,
        temporary_role=temporary_role,
        temporary_pay_rate=temporary_pay_rate,
        created_for_date=created_for_date,
    )
    logger.info("新增臨時班 %s：案場 %s %s %s", sh.id, site_id, created_for_date, shift_type)
    return sh


async def copy_temporary_shifts(db: AsyncSession, site_id: int, from_date: date, to_date: date) -> List[Shift]:
    """複製臨時班定義到另一天（不帶保全）；目標日已有的同職務同班別不重複建立。"""
    if from_date == to_date:
        raise RuleValidationError("來源與目標日期相同")
    source = await crud.list_temporary_shifts(db, site_id, from_date)
    existing = {(sh.type, sh.temporary_role) for sh in await crud.list_temporary_shifts(db, site_id, to_date)}
    created = []
    for sh in source:
        if (sh.type, sh.temporary_role) in existing:
            continue
        created.append(await crud.insert_shift(
            db,
            site_id=site_id,
            guard_id=None,
            type=sh.type,
            is_temporary=True,
            temporary_role=sh.temporary_role,
            temporary_pay_rate=sh.temporary_pay_rate,
            created_for_date=to_date,
        ))
    logger.info("案場 %s 複製臨時班 %s → %s：%s 筆", site_id, from_date, to_date, len(created))
    return created
