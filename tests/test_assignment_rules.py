"""
指派規則測試。
覆蓋：slot 指派 / 換人 / 取消指派連動出勤、跨案場衝突、固定班整組取代、調班、臨時班、選擇清單排序。
"""
from datetime import date
import pytest

from roster import crud
from roster.crud import ConflictError, NotFoundError, RuleValidationError
from roster.schemas import GuardUpdate
from roster.services import assignment_rules, attendance_reconciler, slot_generator
from factories import make_site, make_guard

D = date(2024, 1, 10)


@pytest.mark.asyncio
async def test_assign_same_guard_twice_is_noop(db):
    site = await make_site(db)
    guard = await make_guard(db)
    slots = await slot_generator.generate_slots_for_date(db, site.id, D)
    s1 = await assignment_rules.assign_guard_to_slot(db, slots[0].id, guard.id)
    s2 = await assignment_rules.assign_guard_to_slot(db, slots[0].id, guard.id)
    assert s1.id == s2.id
    assert s2.assigned_guard_id == guard.id


@pytest.mark.asyncio
async def test_assign_guard_already_holding_same_shift_conflicts(db):
    """同日同班別已佔用其他 slot（含他案場）→ Conflict，不寫入"""
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    guard = await make_guard(db)
    xs = await slot_generator.generate_slots_for_date(db, x.id, D)
    ys = await slot_generator.generate_slots_for_date(db, y.id, D)
    await assignment_rules.assign_guard_to_slot(db, xs[0].id, guard.id)

    with pytest.raises(ConflictError):
        await assignment_rules.assign_guard_to_slot(db, ys[0].id, guard.id)
    with pytest.raises(ConflictError):
        await assignment_rules.assign_guard_to_slot(db, xs[1].id, guard.id)
    assert (await crud.get_slot(db, ys[0].id)).assigned_guard_id is None

    # 夜班不同班別 → 可以
    night = [s for s in ys if s.shift_type == "night"][0]
    await assignment_rules.assign_guard_to_slot(db, night.id, guard.id)


@pytest.mark.asyncio
async def test_assign_inactive_or_missing_guard(db):
    site = await make_site(db)
    guard = await make_guard(db)
    await crud.update_guard(db, guard, GuardUpdate(status="inactive"))
    slots = await slot_generator.generate_slots_for_date(db, site.id, D)
    with pytest.raises(RuleValidationError):
        await assignment_rules.assign_guard_to_slot(db, slots[0].id, guard.id)
    with pytest.raises(NotFoundError):
        await assignment_rules.assign_guard_to_slot(db, slots[0].id, 9999)
    with pytest.raises(NotFoundError):
        await assignment_rules.assign_guard_to_slot(db, 9999, guard.id)


@pytest.mark.asyncio
async def test_replace_guard_clears_previous_attendance(db):
    """換人：前一位的出勤紀錄刪除、slot 回到未點名"""
    site = await make_site(db)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    slots = await slot_generator.generate_slots_for_date(db, site.id, D)
    await assignment_rules.assign_guard_to_slot(db, slots[0].id, a.id)
    await attendance_reconciler.mark_slot_attendance(db, slots[0].id, True)

    slot = await assignment_rules.assign_guard_to_slot(db, slots[0].id, b.id)
    assert slot.assigned_guard_id == b.id
    assert slot.is_present is None
    assert await crud.find_attendance_record(db, a.id, site.id, D, "day") is None


@pytest.mark.asyncio
async def test_unassign_cascades_attendance(db):
    """取消指派：slot 無保全、無殘留 present / absent 紀錄"""
    site = await make_site(db)
    guard = await make_guard(db)
    slots = await slot_generator.generate_slots_for_date(db, site.id, D)
    await assignment_rules.assign_guard_to_slot(db, slots[0].id, guard.id)
    await attendance_reconciler.mark_slot_attendance(db, slots[0].id, True)

    slot = await assignment_rules.unassign_guard_from_slot(db, slots[0].id)
    assert slot.assigned_guard_id is None
    assert slot.is_present is None
    assert await crud.list_attendance_by_guard_and_date_range(db, guard.id, D, D) == []


@pytest.mark.asyncio
async def test_available_guards_current_first_then_name(db):
    site = await make_site(db)
    other = await make_site(db, name="B")
    zhang = await make_guard(db, "Zhang")
    adam = await make_guard(db, "Adam")
    busy = await make_guard(db, "Busy")
    await make_guard(db, "Gone", status="inactive")
    slots = await slot_generator.generate_slots_for_date(db, site.id, D)
    other_slots = await slot_generator.generate_slots_for_date(db, other.id, D)
    await assignment_rules.assign_guard_to_slot(db, slots[0].id, zhang.id)
    await assignment_rules.assign_guard_to_slot(db, other_slots[0].id, busy.id)

    guards = await assignment_rules.list_available_guards_for_slot(db, slots[0].id)
    assert [g.id for g in guards] == [zhang.id, adam.id]


def test_order_guards_for_selection():
    """已選者在前，其餘依姓名"""
    class G:
        def __init__(self, id, name):
            self.id, self.name = id, name
    guards = [G(1, "Carol"), G(2, "alice"), G(3, "Bob"), G(4, "Dave")]
    ordered = assignment_rules.order_guards_for_selection(guards, [4, 3])
    assert [g.id for g in ordered] == [3, 4, 2, 1]


# ---------- 固定班 ----------
@pytest.mark.asyncio
async def test_create_shift_conflicts_across_sites(db):
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    guard = await make_guard(db)
    await assignment_rules.create_shift(db, x.id, guard.id, "day")
    with pytest.raises(ConflictError):
        await assignment_rules.create_shift(db, y.id, guard.id, "day")
    with pytest.raises(ConflictError):
        await assignment_rules.create_shift(db, x.id, guard.id, "day")
    # 不同班別可以
    await assignment_rules.create_shift(db, y.id, guard.id, "night")
    assert len(await crud.list_shifts_by_guard(db, guard.id)) == 2


@pytest.mark.asyncio
async def test_allocate_guards_full_replace(db):
    site = await make_site(db)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    c = await make_guard(db, "丙")
    await assignment_rules.allocate_guards(db, site.id, "day", [a.id, b.id])
    await assignment_rules.allocate_guards(db, site.id, "day", [b.id, c.id])
    shifts = await crud.list_shifts_by_site(db, site.id, shift_type="day")
    assert sorted(sh.guard_id for sh in shifts) == sorted([b.id, c.id])


@pytest.mark.asyncio
async def test_allocate_conflict_writes_nothing(db):
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    await assignment_rules.allocate_guards(db, x.id, "day", [a.id])
    await assignment_rules.allocate_guards(db, y.id, "day", [b.id])
    with pytest.raises(ConflictError):
        await assignment_rules.allocate_guards(db, y.id, "day", [a.id])
    shifts = await crud.list_shifts_by_site(db, y.id, shift_type="day")
    assert [sh.guard_id for sh in shifts] == [b.id]


@pytest.mark.asyncio
async def test_allocate_clears_removed_guards_attendance(db):
    site = await make_site(db)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    await assignment_rules.allocate_guards(db, site.id, "day", [a.id, b.id])
    await attendance_reconciler.mark_shift_attendance(db, site.id, a.id, D, "day")
    await attendance_reconciler.mark_shift_attendance(db, site.id, b.id, D, "day")

    await assignment_rules.allocate_guards(db, site.id, "day", [b.id], clear_attendance_on=D)
    records = await crud.list_attendance_by_site_and_date(db, site.id, D, status="present")
    assert [r.guard_id for r in records] == [b.id]


@pytest.mark.asyncio
async def test_allocate_requires_existing_site(db):
    guard = await make_guard(db)
    with pytest.raises(NotFoundError):
        await assignment_rules.allocate_guards(db, 9999, "day", [guard.id])


@pytest.mark.asyncio
async def test_reassign_guard_to_other_shift(db):
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    guard = await make_guard(db)
    src = await assignment_rules.create_shift(db, x.id, guard.id, "day")
    dst = await assignment_rules.create_temporary_shift(db, y.id, "day", D, temporary_role="Patrol")
    moved = await assignment_rules.reassign_guard(db, src.id, dst.id)
    assert moved.guard_id == guard.id
    assert (await crud.get_shift(db, src.id)).guard_id is None


@pytest.mark.asyncio
async def test_reassign_into_occupied_shift_conflicts(db):
    site = await make_site(db)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    sa = await assignment_rules.create_shift(db, site.id, a.id, "day")
    sb = await assignment_rules.create_shift(db, site.id, b.id, "night")
    with pytest.raises(ConflictError):
        await assignment_rules.reassign_guard(db, sa.id, sb.id)


@pytest.mark.asyncio
async def test_temporary_shift_only_valid_on_its_date(db):
    site = await make_site(db)
    await assignment_rules.create_temporary_shift(db, site.id, "night", D, temporary_role="Event")
    assert len(await crud.list_shifts_by_site(db, site.id, on_date=D)) == 1
    assert await crud.list_shifts_by_site(db, site.id, on_date=date(2024, 1, 11)) == []
    assert await crud.list_shifts_by_site(db, site.id) == []


@pytest.mark.asyncio
async def test_copy_temporary_shifts_without_guards(db):
    site = await make_site(db)
    guard = await make_guard(db)
    await assignment_rules.create_temporary_shift(db, site.id, "day", D, temporary_role="Event", guard_id=guard.id)
    target = date(2024, 1, 12)
    created = await assignment_rules.copy_temporary_shifts(db, site.id, D, target)
    assert len(created) == 1
    assert created[0].guard_id is None
    assert created[0].created_for_date == target
    # 再複製一次不重複
    assert await assignment_rules.copy_temporary_shifts(db, site.id, D, target) == []
    with pytest.raises(RuleValidationError):
        await assignment_rules.copy_temporary_shifts(db, site.id, D, D)


@pytest.mark.asyncio
async def test_assign_guard_with_shift_at_other_site_conflicts(db):
    """他案場有同班別的固定班 → 不可指派，也不出現在可指派清單"""
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    a = await make_guard(db, "甲")
    await assignment_rules.create_shift(db, y.id, a.id, "day")
    xs = await slot_generator.generate_slots_for_date(db, x.id, D)
    day = [s for s in xs if s.shift_type == "day"][0]
    night = [s for s in xs if s.shift_type == "night"][0]

    with pytest.raises(ConflictError):
        await assignment_rules.assign_guard_to_slot(db, day.id, a.id)
    assert (await crud.get_slot(db, day.id)).assigned_guard_id is None
    assert a.id not in [g.id for g in await assignment_rules.list_available_guards_for_slot(db, day.id)]

    # 夜班沒有衝突
    await assignment_rules.assign_guard_to_slot(db, night.id, a.id)


@pytest.mark.asyncio
async def test_reassign_across_sites_records_reassigned(db):
    """跨案場調班：原案場當日記 reassigned、slot 釋出，目標案場可正常點名"""
    x = await make_site(db, name="X")
    y = await make_site(db, name="Y")
    a = await make_guard(db, "甲")
    src = await assignment_rules.create_shift(db, x.id, a.id, "day")
    xs = await slot_generator.generate_slots_for_date(db, x.id, D)
    await assignment_rules.assign_guard_to_slot(db, xs[0].id, a.id)
    await attendance_reconciler.mark_slot_attendance(db, xs[0].id, True)
    dst = await assignment_rules.create_temporary_shift(db, y.id, "day", D, temporary_role="Patrol")

    await assignment_rules.reassign_guard(db, src.id, dst.id)
    rec = await crud.find_attendance_record(db, a.id, x.id, D, "day")
    assert rec.status == "reassigned"
    assert rec.reassigned_site_id == y.id
    assert (await crud.get_slot(db, xs[0].id)).assigned_guard_id is None

    marked = await attendance_reconciler.mark_shift_attendance(db, y.id, a.id, D, "day")
    assert marked.status == "present"
