"""
出勤點名：slot 與固定班兩種模式的 未點名 → present / absent 轉換。

- present 前檢查：確實指派在該 slot / 班別、同日同班別未在他案場 present、本案場該班別 present 人數未達上限（臨時 slot / 臨時班不受限）。
- 已 present 再標 present：不報錯、不重複建立紀錄。
- slot 模式標 absent：刪除對應出勤紀錄，只在 slot 上記 is_present=False；固定班模式則存一筆 status=absent。
- 批次操作逐筆執行，單筆失敗只記入 failures，不中斷、不回滾已成功者。
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from roster import crud, schemas
from roster.crud import RosterError, ConflictError, NotFoundError, RuleValidationError
from roster.models import AttendanceRecord, DailyAttendanceSlot, Shift
from roster.services import assignment_rules
from roster.services.staffing import shift_capacity

logger = logging.getLogger(__name__)


async def _check_capacity(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    guard_ids: Tuple[int, ...],
) -> None:
    """本案場該班別正式 present 人數（不含 guard_ids 自己）已達上限則衝突"""
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    capacity = shift_capacity(site, shift_type)
    present = await crud.count_present(db, site_id, on_date, shift_type, regular_only=True)
    for gid in guard_ids:
        rec = await crud.find_attendance_record(db, gid, site_id, on_date, shift_type)
        if rec is not None and rec.status == "present" and not rec.is_temporary:
            present -= 1
    if present >= capacity:
        logger.warning("案場 %s %s %s 出勤已滿（%s/%s）", site_id, on_date, shift_type, present, capacity)
        raise ConflictError(f"該班別出勤人數已達上限 {capacity} 人")


async def _check_not_present_elsewhere(db: AsyncSession, guard_id: int, site_id: int, on_date: date, shift_type: str) -> None:
    if await assignment_rules.is_guard_present_elsewhere(db, guard_id, on_date, shift_type, site_id):
        logger.warning("保全 %s 於 %s %s 已在其他案場出勤", guard_id, on_date, shift_type)
        raise ConflictError("該保全當日該班別已在其他案場出勤")


async def _find_site_slot(
    db: AsyncSession, guard_id: int, site_id: int, on_date: date, shift_type: str,
) -> Optional[DailyAttendanceSlot]:
    for slot in await crud.find_guard_slots_on(db, guard_id, on_date, shift_type):
        if slot.site_id == site_id:
            return slot
    return None


# ---------- slot 模式 ----------
async def mark_slot_attendance(db: AsyncSession, slot_id: int, is_present: bool) -> DailyAttendanceSlot:
    slot = await crud.get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("slot 不存在")
    if slot.assigned_guard_id is None:
        raise RuleValidationError("slot 尚未指派保全，無法點名")
    guard_id = slot.assigned_guard_id

    if not is_present:
        await crud.delete_attendance_for_slot(db, slot)
        slot.is_present = False
        slot = await crud.save_slot(db, slot)
        logger.info("slot %s 保全 %s 標記缺勤", slot.id, guard_id)
        return slot

    if slot.is_present is True:
        return slot
    await _check_not_present_elsewhere(db, guard_id, slot.site_id, slot.attendance_date, slot.shift_type)
    if not slot.is_temporary:
        await _check_capacity(db, slot.site_id, slot.attendance_date, slot.shift_type, (guard_id,))
    sh = await crud.find_guard_shift(db, slot.site_id, guard_id, slot.shift_type, on_date=slot.attendance_date)
    await crud.upsert_attendance_record(
        db,
        guard_id=guard_id,
        site_id=slot.site_id,
        on_date=slot.attendance_date,
        shift_type=slot.shift_type,
        status="present",
        shift_id=sh.id if sh else None,
        slot_id=slot.id,
        is_temporary=slot.is_temporary,
    )
    slot.is_present = True
    slot = await crud.save_slot(db, slot)
    logger.info("slot %s 保全 %s 標記出勤", slot.id, guard_id)
    return slot


async def mark_all_assigned_present(db: AsyncSession, site_id: int, on_date: date) -> schemas.BulkResult:
    """已指派且尚未點名（is_present 為 None）的 slot 全部標 present；已標缺勤者不動。item_id 為 slot id。"""
    result = schemas.BulkResult()
    for slot in await crud.list_slots_by_site_and_date(db, site_id, on_date):
        if slot.assigned_guard_id is None or slot.is_present is not None:
            continue
        try:
            await mark_slot_attendance(db, slot.id, True)
            result.success_count += 1
        except RosterError as e:
            logger.warning("slot %s 批次點名失敗：%s", slot.id, e)
            result.failure_count += 1
            result.failures.append(schemas.BulkItemFailure(item_id=slot.id, reason=str(e)))
    logger.info("案場 %s %s 全部點名：成功 %s 失敗 %s", site_id, on_date, result.success_count, result.failure_count)
    return result


async def create_temporary_slot(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    role_type: str,
    pay_rate=None,
) -> DailyAttendanceSlot:
    """臨時 slot：編號接續當日同班別同職務的臨時 slot，不計入人力上限。"""
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    if not role_type or not role_type.strip():
        raise RuleValidationError("請填寫職務")
    number = await crud.next_temporary_slot_number(db, site_id, on_date, shift_type, role_type.strip())
    slot = DailyAttendanceSlot(
        site_id=site_id,
        attendance_date=on_date,
        shift_type=shift_type,
        role_type=role_type.strip(),
        slot_number=number,
        is_temporary=True,
        pay_rate=pay_rate,
    )
    [slot] = await crud.insert_slots(db, [slot])
    logger.info("案場 %s %s %s 新增臨時 slot %s（%s #%s）", site_id, on_date, shift_type, slot.id, slot.role_type, number)
    return slot


async def delete_temporary_slot(db: AsyncSession, slot_id: int) -> None:
    """刪除臨時 slot；有指派者先取消指派（連同出勤）再刪。正式 slot 不可刪。"""
    slot = await crud.get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("slot 不存在")
    if not slot.is_temporary:
        raise RuleValidationError("只能刪除臨時 slot")
    if slot.assigned_guard_id is not None:
        slot = await assignment_rules.unassign_guard_from_slot(db, slot.id)
    await crud.delete_slot(db, slot)
    logger.info("刪除臨時 slot %s", slot_id)


# ---------- 固定班（出勤紀錄）模式 ----------
async def _require_shift(
    db: AsyncSession, site_id: int, guard_id: int, on_date: date, shift_type: str,
) -> Shift:
    sh = await crud.find_guard_shift(db, site_id, guard_id, shift_type, on_date=on_date)
    if not sh:
        raise NotFoundError("該保全未排入此案場此班別")
    return sh


async def mark_shift_attendance(
    db: AsyncSession,
    site_id: int,
    guard_id: int,
    on_date: date,
    shift_type: str,
    status: str = "present",
    notes: Optional[str] = None,
) -> AttendanceRecord:
    if status not in ("present", "absent"):
        raise RuleValidationError("status 須為 present 或 absent")
    sh = await _require_shift(db, site_id, guard_id, on_date, shift_type)
    slot = await _find_site_slot(db, guard_id, site_id, on_date, shift_type)

    if status == "present":
        existing = await crud.find_attendance_record(db, guard_id, site_id, on_date, shift_type)
        if existing is not None and existing.status == "present":
            return existing
        await _check_not_present_elsewhere(db, guard_id, site_id, on_date, shift_type)
        if not sh.is_temporary:
            await _check_capacity(db, site_id, on_date, shift_type, (guard_id,))

    rec = await crud.upsert_attendance_record(
        db,
        guard_id=guard_id,
        site_id=site_id,
        on_date=on_date,
        shift_type=shift_type,
        status=status,
        shift_id=sh.id,
        slot_id=slot.id if slot else None,
        is_temporary=sh.is_temporary,
        notes=notes,
    )
    if slot is not None:
        slot.is_present = status == "present"
        await crud.save_slot(db, slot)
    logger.info("案場 %s %s %s 保全 %s 標記 %s", site_id, on_date, shift_type, guard_id, status)
    return rec


async def unmark_attendance(db: AsyncSession, site_id: int, guard_id: int, on_date: date, shift_type: str) -> None:
    """刪除出勤紀錄回到未點名；沒有紀錄時 NotFound。"""
    rec = await crud.find_attendance_record(db, guard_id, site_id, on_date, shift_type)
    if not rec:
        raise NotFoundError("出勤紀錄不存在")
    await crud.delete_attendance_record(db, rec)
    slot = await _find_site_slot(db, guard_id, site_id, on_date, shift_type)
    if slot is not None:
        slot.is_present = None
        await crud.save_slot(db, slot)
    logger.info("案場 %s %s %s 保全 %s 取消點名", site_id, on_date, shift_type, guard_id)


async def mark_replaced(
    db: AsyncSession,
    site_id: int,
    guard_id: int,
    on_date: date,
    shift_type: str,
    replacement_guard_id: int,
    notes: Optional[str] = None,
) -> List[AttendanceRecord]:
    """
    原保全記 replaced、代班保全記 present；代班者同樣受他案場出勤與人數上限限制。
    原保全當日在本案場有 slot 時，slot 改指派給代班者並標 present，出勤紀錄的 slot_id 跟著移到代班者。
    """
    if replacement_guard_id == guard_id:
        raise RuleValidationError("代班保全不可為原保全本人")
    sh = await _require_shift(db, site_id, guard_id, on_date, shift_type)
    substitute = await crud.get_guard(db, replacement_guard_id)
    if not substitute:
        raise NotFoundError("代班保全不存在")
    if substitute.status != "active":
        raise RuleValidationError(f"保全 {substitute.name} 非在職狀態，不可代班")
    slot = await _find_site_slot(db, guard_id, site_id, on_date, shift_type)
    if slot is not None and await crud.find_guard_slots_on(
        db, replacement_guard_id, on_date, shift_type, exclude_slot_id=slot.id,
    ):
        raise ConflictError(f"保全 {substitute.name} 當日該班別已指派至其他 slot")
    await _check_not_present_elsewhere(db, replacement_guard_id, site_id, on_date, shift_type)
    if not sh.is_temporary:
        await _check_capacity(db, site_id, on_date, shift_type, (guard_id, replacement_guard_id))

    original = await crud.upsert_attendance_record(
        db,
        guard_id=guard_id,
        site_id=site_id,
        on_date=on_date,
        shift_type=shift_type,
        status="replaced",
        shift_id=sh.id,
        is_temporary=sh.is_temporary,
        notes=notes,
        replacement_guard_id=replacement_guard_id,
    )
    substitute_rec = await crud.upsert_attendance_record(
        db,
        guard_id=replacement_guard_id,
        site_id=site_id,
        on_date=on_date,
        shift_type=shift_type,
        status="present",
        shift_id=sh.id,
        slot_id=slot.id if slot else None,
        is_temporary=sh.is_temporary,
        notes=notes,
    )
    if slot is not None:
        original.slot_id = None
        slot.assigned_guard_id = replacement_guard_id
        slot.is_present = True
        await crud.save_slot(db, slot)
    logger.info("案場 %s %s %s 保全 %s 由 %s 代班", site_id, on_date, shift_type, guard_id, replacement_guard_id)
    return [original, substitute_rec]


async def bulk_mark_attendance(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    guard_ids: List[int],
    status: str = "present",
) -> schemas.BulkResult:
    """逐位保全套用單筆點名規則；item_id 為 guard id。"""
    if not guard_ids:
        raise RuleValidationError("請選擇至少一位保全")
    result = schemas.BulkResult()
    for gid in guard_ids:
        try:
            await mark_shift_attendance(db, site_id, gid, on_date, shift_type, status)
            result.success_count += 1
        except RosterError as e:
            logger.warning("保全 %s 批次點名失敗：%s", gid, e)
            result.failure_count += 1
            result.failures.append(schemas.BulkItemFailure(item_id=gid, reason=str(e)))
    logger.info(
        "案場 %s %s %s 批次點名 %s：成功 %s 失敗 %s",
        site_id, on_date, shift_type, status, result.success_count, result.failure_count,
    )
    return result


async def copy_attendance_from_date(
    db: AsyncSession,
    site_id: int,
    from_date: date,
    to_date: date,
) -> Tuple[List[AttendanceRecord], List[int]]:
    """
    把 from_date 本案場的 present 紀錄複製到 to_date。
    以下情況跳過（計入 skipped，不算失敗）：目標日沒有對應班別、已在他案場出勤、目標日已點名、該班別已滿。
    回傳 (新建紀錄, 被跳過的 guard id)。
    """
    if from_date == to_date:
        raise RuleValidationError("來源與目標日期相同")
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    copied: List[AttendanceRecord] = []
    skipped: List[int] = []
    for src in await crud.list_attendance_by_site_and_date(db, site_id, from_date, status="present"):
        sh = await crud.find_guard_shift(db, site_id, src.guard_id, src.shift_type, on_date=to_date)
        if sh is None:
            skipped.append(src.guard_id)
            continue
        if await crud.find_attendance_record(db, src.guard_id, site_id, to_date, src.shift_type) is not None:
            skipped.append(src.guard_id)
            continue
        if await assignment_rules.is_guard_present_elsewhere(db, src.guard_id, to_date, src.shift_type, site_id):
            skipped.append(src.guard_id)
            continue
        if not sh.is_temporary:
            capacity = shift_capacity(site, src.shift_type)
            if await crud.count_present(db, site_id, to_date, src.shift_type) >= capacity:
                skipped.append(src.guard_id)
                continue
        slot = await _find_site_slot(db, src.guard_id, site_id, to_date, src.shift_type)
        rec = await crud.upsert_attendance_record(
            db,
            guard_id=src.guard_id,
            site_id=site_id,
            on_date=to_date,
            shift_type=src.shift_type,
            status="present",
            shift_id=sh.id,
            slot_id=slot.id if slot else None,
            is_temporary=sh.is_temporary,
        )
        if slot is not None:
            slot.is_present = True
            await crud.save_slot(db, slot)
        copied.append(rec)
    logger.info("案場 %s 複製出勤 %s → %s：複製 %s 跳過 %s", site_id, from_date, to_date, len(copied), len(skipped))
    return copied, skipped


async def reset_attendance(db: AsyncSession, site_id: int, on_date: date) -> int:
    """刪除本案場當日所有 present 紀錄（無條件、不可復原），slot 回到未點名。"""
    n = await crud.delete_present_records(db, site_id, on_date)
    for slot in await crud.list_slots_by_site_and_date(db, site_id, on_date):
        if slot.is_present is True:
            slot.is_present = None
            await crud.save_slot(db, slot)
    logger.info("案場 %s %s 重設出勤：刪除 %s 筆", site_id, on_date, n)
    return n


# ---------- 統計 ----------
def _slot_only_absences(
    slots: List[DailyAttendanceSlot], records: List[AttendanceRecord],
) -> List[DailyAttendanceSlot]:
    """slot 模式缺勤只記在 slot 上（無出勤紀錄），統計時需另外補進來"""
    recorded = {(r.guard_id, r.site_id, r.attendance_date, r.shift_type) for r in records}
    return [
        s for s in slots
        if s.is_present is False and s.assigned_guard_id is not None
        and (s.assigned_guard_id, s.site_id, s.attendance_date, s.shift_type) not in recorded
    ]


async def attendance_summary(db: AsyncSession, site_id: int, on_date: date) -> schemas.AttendanceSummary:
    """present / absent / total 依班別統計；absent 含 slot 上標記的缺勤"""
    summary = schemas.AttendanceSummary(site_id=site_id, attendance_date=on_date)
    records = await crud.list_attendance_by_site_and_date(db, site_id, on_date)
    for rec in records:
        counts = summary.day_shift if rec.shift_type == "day" else summary.night_shift
        counts.total += 1
        if rec.status == "present":
            counts.present += 1
        elif rec.status == "absent":
            counts.absent += 1
    slots = await crud.list_slots_by_site_and_date(db, site_id, on_date)
    for slot in _slot_only_absences(slots, records):
        counts = summary.day_shift if slot.shift_type == "day" else summary.night_shift
        counts.total += 1
        counts.absent += 1
    return summary


async def guard_attendance_stats(
    db: AsyncSession, guard_id: int, start_date: date, end_date: date,
) -> schemas.GuardAttendanceStats:
    records = await crud.list_attendance_by_guard_and_date_range(db, guard_id, start_date, end_date)
    slots = await crud.list_slots_by_guard_and_date_range(db, guard_id, start_date, end_date)
    slot_absences = len(_slot_only_absences(slots, records))
    present = sum(1 for r in records if r.status == "present")
    absent = sum(1 for r in records if r.status == "absent") + slot_absences
    total = len(records) + slot_absences
    return schemas.GuardAttendanceStats(
        guard_id=guard_id,
        total_days=total,
        present_days=present,
        absent_days=absent,
        attendance_percentage=round(present * 100 / total) if total else 0,
    )
