"""
每日 slot 產生測試。
覆蓋：依人力設定產生、冪等、無設定回空、重新產生只補不刪、沿用前一日並自動點名。
"""
from datetime import date
from decimal import Decimal
import pytest

from roster import crud
from roster.config import settings
from roster.schemas import SiteUpdate, StaffingRequirementCreate
from roster.services import assignment_rules, attendance_reconciler, slot_generator
from roster.services.staffing import staffing_plan, shift_capacity, site_monthly_budget
from factories import make_site, make_guard

D1 = date(2024, 1, 10)
D2 = date(2024, 1, 11)


@pytest.mark.asyncio
async def test_generate_from_staffing_requirements(db):
    """人力需求：保全日2夜1、主管日1 → 4 個 slot，日班在前、編號由 1 起"""
    site = await make_site(db, requirements=[("Security Guard", 2, 1, 1000), ("Supervisor", 1, 0, 1500)])
    slots = await slot_generator.generate_slots_for_date(db, site.id, D1)
    keys = [(s.shift_type, s.role_type, s.slot_number) for s in slots]
    assert keys == [
        ("day", "Security Guard", 1),
        ("day", "Security Guard", 2),
        ("day", "Supervisor", 1),
        ("night", "Security Guard", 1),
    ]
    assert all(s.assigned_guard_id is None and s.is_present is None for s in slots)
    sup = [s for s in slots if s.role_type == "Supervisor"][0]
    assert sup.pay_rate == Decimal("1500")


@pytest.mark.asyncio
async def test_generate_is_idempotent(db):
    """同一天重複產生：回傳同一批 slot，不新增"""
    site = await make_site(db, day_slots=2, night_slots=1)
    first = await slot_generator.generate_slots_for_date(db, site.id, D1)
    second = await slot_generator.generate_slots_for_date(db, site.id, D1)
    assert [s.id for s in first] == [s.id for s in second]
    assert len(await crud.list_slots_by_site_and_date(db, site.id, D1)) == 3


@pytest.mark.asyncio
async def test_generate_without_config_returns_empty(db):
    """案場沒有任何人力設定：回傳空清單，不報錯"""
    site = await make_site(db, day_slots=0, night_slots=0)
    assert await slot_generator.generate_slots_for_date(db, site.id, D1) == []


@pytest.mark.asyncio
async def test_legacy_config_uses_default_role(db):
    site = await make_site(db, day_slots=1, night_slots=1, pay_rate="28000")
    slots = await slot_generator.generate_slots_for_date(db, site.id, D1)
    assert {s.role_type for s in slots} == {settings.default_role_type}
    assert all(s.pay_rate == Decimal("28000") for s in slots)


@pytest.mark.asyncio
async def test_regenerate_adds_missing_and_keeps_excess(db):
    """需求增加 → 補 slot；需求減少 → 不刪，回報 excess；已指派者保留"""
    site = await make_site(db, requirements=[("Security Guard", 2, 0, 1000)])
    slots = await slot_generator.generate_slots_for_date(db, site.id, D1)
    guard = await make_guard(db, "王小明")
    await assignment_rules.assign_guard_to_slot(db, slots[1].id, guard.id)

    await crud.update_site(db, site, SiteUpdate(staffing_requirements=[
        StaffingRequirementCreate(role_type="Security Guard", day_slots=3, night_slots=1, budget_per_slot=Decimal("1200")),
    ]))
    created, excess, all_slots = await slot_generator.regenerate_slots_for_date(db, site.id, D1)
    assert sorted((s.shift_type, s.slot_number) for s in created) == [("day", 3), ("night", 1)]
    assert excess == []
    assert len(all_slots) == 4
    # 未點名的正式 slot 單價更新
    assert all(s.pay_rate == Decimal("1200") for s in all_slots)

    await crud.update_site(db, site, SiteUpdate(staffing_requirements=[
        StaffingRequirementCreate(role_type="Security Guard", day_slots=1, night_slots=0, budget_per_slot=Decimal("1200")),
    ]))
    created, excess, all_slots = await slot_generator.regenerate_slots_for_date(db, site.id, D1)
    assert created == []
    assert len(all_slots) == 4
    assert len(excess) == 3
    assert slots[1].id in excess
    kept = await crud.get_slot(db, slots[1].id)
    assert kept.assigned_guard_id == guard.id


@pytest.mark.asyncio
async def test_copy_previous_day_assigns_and_marks_present(db):
    """前一日有指派的 slot 帶到今日，並直接標記出勤（寫入出勤紀錄）"""
    site = await make_site(db, day_slots=2, night_slots=0)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    prev = await slot_generator.generate_slots_for_date(db, site.id, D1)
    await assignment_rules.assign_guard_to_slot(db, prev[0].id, a.id)
    await assignment_rules.assign_guard_to_slot(db, prev[1].id, b.id)

    copied, skipped, slots = await slot_generator.copy_slots_from_previous_day(db, site.id, D2)
    assert copied == 2
    assert skipped == []
    assert [(s.slot_number, s.assigned_guard_id, s.is_present) for s in slots] == [(1, a.id, True), (2, b.id, True)]
    records = await crud.list_attendance_by_site_and_date(db, site.id, D2, status="present")
    assert sorted(r.guard_id for r in records) == sorted([a.id, b.id])
    assert all(r.slot_id is not None for r in records)


@pytest.mark.asyncio
async def test_copy_previous_day_skips_taken_slot_and_conflicts(db):
    """今日同位置已是別人 → 跳過；保全今日已在他案場出勤 → 跳過"""
    site = await make_site(db, day_slots=2, night_slots=0)
    other = await make_site(db, name="案場B", day_slots=1, night_slots=0)
    a = await make_guard(db, "甲")
    b = await make_guard(db, "乙")
    c = await make_guard(db, "丙")
    prev = await slot_generator.generate_slots_for_date(db, site.id, D1)
    await assignment_rules.assign_guard_to_slot(db, prev[0].id, a.id)
    await assignment_rules.assign_guard_to_slot(db, prev[1].id, b.id)

    today = await slot_generator.generate_slots_for_date(db, site.id, D2)
    await assignment_rules.assign_guard_to_slot(db, today[0].id, c.id)
    other_slots = await slot_generator.generate_slots_for_date(db, other.id, D2)
    await assignment_rules.assign_guard_to_slot(db, other_slots[0].id, b.id)
    await attendance_reconciler.mark_slot_attendance(db, other_slots[0].id, True)

    copied, skipped, slots = await slot_generator.copy_slots_from_previous_day(db, site.id, D2, previous_date=D1)
    assert copied == 0
    assert sorted(skipped) == sorted([a.id, b.id])
    assert slots[0].assigned_guard_id == c.id


@pytest.mark.asyncio
async def test_copy_previous_day_recreates_temporary_slot(db):
    site = await make_site(db, day_slots=0, night_slots=0)
    guard = await make_guard(db, "甲")
    temp = await attendance_reconciler.create_temporary_slot(db, site.id, D1, "night", "Patrol", pay_rate=Decimal("900"))
    await assignment_rules.assign_guard_to_slot(db, temp.id, guard.id)

    copied, skipped, slots = await slot_generator.copy_slots_from_previous_day(db, site.id, D2)
    assert copied == 1
    assert len(slots) == 1
    assert slots[0].is_temporary is True
    assert slots[0].role_type == "Patrol"
    assert slots[0].is_present is True


# 純函式：人力設定
@pytest.mark.asyncio
async def test_capacity_and_budget(db):
    site = await make_site(db, requirements=[("Security Guard", 2, 1, 1000), ("Supervisor", 1, 1, 500)])
    assert shift_capacity(site, "day") == 3
    assert shift_capacity(site, "night") == 2
    assert len(staffing_plan(site)) == 5
    # monthly：每 slot 月額 × slot 數
    assert site_monthly_budget(site, 30) == Decimal("4000.00")

    legacy = await make_site(db, name="舊案場", day_slots=2, night_slots=1, pay_rate="30000")
    assert shift_capacity(legacy, "day") == 2
    assert site_monthly_budget(legacy, 30) == Decimal("90000.00")

    per_shift = await make_site(db, name="按班計價", requirements=[("Security Guard", 1, 0, 1000)])
    per_shift.staffing_requirements[0].rate_type = "per_shift"
    assert site_monthly_budget(per_shift, 30) == Decimal("30000.00")


@pytest.mark.asyncio
async def test_copy_previous_day_releases_slot_when_shift_full(db):
    """今日該班別已滿：指派撤回、slot 保持空缺、計入 skipped"""
    site = await make_site(db, day_slots=1, night_slots=0)
    a = await make_guard(db, "甲")
    c = await make_guard(db, "丙")
    prev = await slot_generator.generate_slots_for_date(db, site.id, D1)
    await assignment_rules.assign_guard_to_slot(db, prev[0].id, a.id)
    await assignment_rules.create_shift(db, site.id, c.id, "day")
    await attendance_reconciler.mark_shift_attendance(db, site.id, c.id, D2, "day")

    copied, skipped, slots = await slot_generator.copy_slots_from_previous_day(db, site.id, D2)
    assert copied == 0
    assert skipped == [a.id]
    assert slots[0].assigned_guard_id is None
    assert slots[0].is_present is None
