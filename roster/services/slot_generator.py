"""
每日 slot 產生：依案場人力設定落地某日的 DailyAttendanceSlot。

- generate：當日已有正式 slot 就原樣回傳（冪等），否則依設定建立 1..N。
- regenerate：只補缺少的 slot、更新未點名正式 slot 的單價；絕不刪 slot，超出設定者回報為 excess 交人工清理。
- copy from previous day：前一日有指派的 slot 帶到今日（沿用或建立對應 slot），並直接標記出勤。
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from roster import crud
from roster.crud import RosterError, NotFoundError
from roster.models import DailyAttendanceSlot
from roster.services import assignment_rules, attendance_reconciler
from roster.services.staffing import staffing_plan

logger = logging.getLogger(__name__)


def _slot_key(slot: DailyAttendanceSlot):
    return (slot.shift_type, slot.role_type, slot.slot_number)


async def _get_site_or_404(db: AsyncSession, site_id: int):
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    return site


async def generate_slots_for_date(db: AsyncSession, site_id: int, on_date: date) -> List[DailyAttendanceSlot]:
    site = await _get_site_or_404(db, site_id)
    existing = await crud.list_slots_by_site_and_date(db, site_id, on_date, is_temporary=False)
    if not existing:
        plan = staffing_plan(site)
        if plan:
            await crud.insert_slots(db, [
                DailyAttendanceSlot(
                    site_id=site_id,
                    attendance_date=on_date,
                    shift_type=spec.shift_type,
                    role_type=spec.role_type,
                    slot_number=spec.slot_number,
                    is_temporary=False,
                    pay_rate=spec.pay_rate,
                )
                for spec in plan
            ])
            logger.info("案場 %s %s 產生 slot %s 個", site_id, on_date, len(plan))
    return await crud.list_slots_by_site_and_date(db, site_id, on_date, load_guard=True)


async def regenerate_slots_for_date(
    db: AsyncSession,
    site_id: int,
    on_date: date,
) -> Tuple[List[DailyAttendanceSlot], List[int], List[DailyAttendanceSlot]]:
    """回傳 (新建 slot, 超出設定的 slot id, 當日全部 slot)"""
    site = await _get_site_or_404(db, site_id)
    plan = staffing_plan(site)
    existing = {
        _slot_key(s): s
        for s in await crud.list_slots_by_site_and_date(db, site_id, on_date, is_temporary=False)
    }
    missing = []
    for spec in plan:
        slot = existing.get(spec.key)
        if slot is None:
            missing.append(DailyAttendanceSlot(
                site_id=site_id,
                attendance_date=on_date,
                shift_type=spec.shift_type,
                role_type=spec.role_type,
                slot_number=spec.slot_number,
                is_temporary=False,
                pay_rate=spec.pay_rate,
            ))
        elif slot.is_present is None and slot.pay_rate != spec.pay_rate:
            slot.pay_rate = spec.pay_rate
            await crud.save_slot(db, slot)
    created = await crud.insert_slots(db, missing)
    plan_keys = {spec.key for spec in plan}
    excess = [s.id for key, s in existing.items() if key not in plan_keys]
    if excess:
        logger.warning("案場 %s %s 有 %s 個 slot 超出目前人力設定：%s", site_id, on_date, len(excess), excess)
    logger.info("案場 %s %s 重新產生 slot：新增 %s 個", site_id, on_date, len(created))
    slots = await crud.list_slots_by_site_and_date(db, site_id, on_date, load_guard=True)
    return created, excess, slots


async def copy_slots_from_previous_day(
    db: AsyncSession,
    site_id: int,
    current_date: date,
    previous_date: Optional[date] = None,
) -> Tuple[int, List[int], List[DailyAttendanceSlot]]:
    """
    前一日有指派保全的 slot，於今日沿用（或建立）同位置 slot、指派同一保全並標 present。
    今日該位置已被別人佔用、或指派 / 點名被規則擋下者計入 skipped；點名失敗時撤回本次新指派。
    回傳 (成功筆數, 被跳過的 guard id, 當日全部 slot)。
    """
    if previous_date is None:
        previous_date = current_date - timedelta(days=1)
    await generate_slots_for_date(db, site_id, current_date)
    today = {
        (s.shift_type, s.role_type, s.slot_number, s.is_temporary): s
        for s in await crud.list_slots_by_site_and_date(db, site_id, current_date)
    }
    copied = 0
    skipped: List[int] = []
    for prev in await crud.list_slots_by_site_and_date(db, site_id, previous_date):
        if prev.assigned_guard_id is None:
            continue
        key = (prev.shift_type, prev.role_type, prev.slot_number, prev.is_temporary)
        target = today.get(key)
        if target is None:
            [target] = await crud.insert_slots(db, [DailyAttendanceSlot(
                site_id=site_id,
                attendance_date=current_date,
                shift_type=prev.shift_type,
                role_type=prev.role_type,
                slot_number=prev.slot_number,
                is_temporary=prev.is_temporary,
                pay_rate=prev.pay_rate,
            )])
            today[key] = target
        if target.assigned_guard_id not in (None, prev.assigned_guard_id):
            skipped.append(prev.assigned_guard_id)
            continue
        was_empty = target.assigned_guard_id is None
        try:
            await assignment_rules.assign_guard_to_slot(db, target.id, prev.assigned_guard_id)
        except RosterError as e:
            logger.warning("slot %s 複製保全 %s 失敗：%s", target.id, prev.assigned_guard_id, e)
            skipped.append(prev.assigned_guard_id)
            continue
        try:
            await attendance_reconciler.mark_slot_attendance(db, target.id, True)
            copied += 1
        except RosterError as e:
            # 點名失敗：本次新指派的一併撤回，slot 保持空缺
            if was_empty:
                await assignment_rules.unassign_guard_from_slot(db, target.id)
            logger.warning("slot %s 複製保全 %s 點名失敗：%s", target.id, prev.assigned_guard_id, e)
            skipped.append(prev.assigned_guard_id)
    logger.info("案場 %s 複製 slot %s → %s：成功 %s 跳過 %s", site_id, previous_date, current_date, copied, len(skipped))
    slots = await crud.list_slots_by_site_and_date(db, site_id, current_date, load_guard=True)
    return copied, skipped, slots
