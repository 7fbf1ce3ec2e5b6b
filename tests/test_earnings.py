"""
月收入彙總測試。
覆蓋：日薪 / 底薪 / 實領計算、獎懲依月份歸屬、案場收支、月班數統計、Excel 匯出。
"""
from datetime import date, timedelta
from decimal import Decimal
import io
import pytest
from openpyxl import load_workbook

from roster import crud
from roster.accounting.earnings_export import build_earnings_excel, EXCEL_HEADERS
from roster.schemas import PaymentRecordCreate
from roster.services import assignment_rules, attendance_reconciler, earnings, slot_generator
from factories import make_site, make_guard


# 純函式
def test_days_in_month_and_range():
    assert earnings.days_in_month(2024, 2) == 29
    assert earnings.days_in_month(2023, 2) == 28
    assert earnings.month_range(2024, 4) == (date(2024, 4, 1), date(2024, 4, 30))


def test_daily_rate_rounding():
    """月薪 / 當月天數，四捨五入到分"""
    assert earnings.daily_rate(Decimal("30000"), 30) == Decimal("1000.00")
    assert earnings.daily_rate(Decimal("30000"), 31) == Decimal("967.74")
    assert earnings.daily_rate(None, 30) == Decimal("0.00")


async def _mark_present_days(db, site, guard, start: date, n: int):
    await assignment_rules.create_shift(db, site.id, guard.id, "day")
    for i in range(n):
        await attendance_reconciler.mark_shift_attendance(db, site.id, guard.id, start + timedelta(days=i), "day")


@pytest.mark.asyncio
async def test_guard_monthly_earnings_round_trip(db):
    """月薪 30000、30 天的月份、出勤 10 班、獎金 500、扣款 200 → 底薪 10000、實領 10300"""
    site = await make_site(db, day_slots=1, night_slots=0)
    guard = await make_guard(db, "甲", pay_rate="30000")
    await _mark_present_days(db, site, guard, date(2024, 4, 1), 10)
    await crud.create_payment_record(db, PaymentRecordCreate(
        guard_id=guard.id, payment_date=date(2024, 4, 15), amount=Decimal("500"), type="bonus",
    ))
    await crud.create_payment_record(db, PaymentRecordCreate(
        guard_id=guard.id, payment_date=date(2024, 4, 20), amount=Decimal("200"), type="deduction",
    ))
    # 其他月份不計
    await crud.create_payment_record(db, PaymentRecordCreate(
        guard_id=guard.id, payment_date=date(2024, 5, 1), amount=Decimal("999"), type="bonus",
    ))

    result = await earnings.get_guard_monthly_earnings(db, guard.id, 2024, 4)
    assert result.days_in_month == 30
    assert result.daily_rate == Decimal("1000.00")
    assert result.shifts_present == 10
    assert result.base_salary == Decimal("10000.00")
    assert result.total_bonus == Decimal("500.00")
    assert result.total_deductions == Decimal("200.00")
    assert result.net_amount == Decimal("10300.00")


@pytest.mark.asyncio
async def test_payment_month_defaults_to_payment_date(db):
    guard = await make_guard(db)
    rec = await crud.create_payment_record(db, PaymentRecordCreate(
        guard_id=guard.id, payment_date=date(2024, 3, 5), amount=Decimal("100"), type="bonus",
    ))
    assert rec.month == "2024-03"


@pytest.mark.asyncio
async def test_site_monthly_earnings(db):
    """案場：預算 − 保全成本（每筆 present × 該保全日薪）"""
    site = await make_site(db, day_slots=1, night_slots=0, pay_rate="40000")
    guard = await make_guard(db, "甲", pay_rate="30000")
    await _mark_present_days(db, site, guard, date(2024, 4, 1), 5)

    result = await earnings.get_site_monthly_earnings(db, site.id, 2024, 4)
    assert result.total_shifts == 5
    assert result.allocated_amount == Decimal("40000.00")
    assert result.guard_costs == Decimal("5000.00")
    assert result.net_earnings == Decimal("35000.00")


@pytest.mark.asyncio
async def test_site_monthly_budget_override(db):
    site = await make_site(db, day_slots=1, night_slots=0, pay_rate="40000", monthly_budget=Decimal("55000"))
    result = await earnings.get_site_monthly_earnings(db, site.id, 2024, 4)
    assert result.allocated_amount == Decimal("55000.00")
    assert result.net_earnings == Decimal("55000.00")


@pytest.mark.asyncio
async def test_all_guards_monthly_earnings_skips_idle_inactive(db):
    site = await make_site(db, day_slots=2, night_slots=0)
    a = await make_guard(db, "甲")
    await make_guard(db, "乙")
    await make_guard(db, "離職", status="inactive")
    await _mark_present_days(db, site, a, date(2024, 4, 1), 2)

    rows = await earnings.get_all_guards_monthly_earnings(db, 2024, 4)
    assert {r.guard_name for r in rows} == {"甲", "乙"}
    by_name = {r.guard_name: r for r in rows}
    assert by_name["甲"].shifts_present == 2
    assert by_name["乙"].net_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_guard_monthly_shift_summary(db):
    site = await make_site(db, day_slots=1, night_slots=1)
    guard = await make_guard(db)
    d1, d2 = date(2024, 4, 1), date(2024, 4, 2)
    for d in (d1, d2):
        await slot_generator.generate_slots_for_date(db, site.id, d)
    day1 = (await crud.list_slots_by_site_and_date(db, site.id, d1))[0]
    night2 = (await crud.list_slots_by_site_and_date(db, site.id, d2))[1]
    await assignment_rules.assign_guard_to_slot(db, day1.id, guard.id)
    await assignment_rules.assign_guard_to_slot(db, night2.id, guard.id)
    await attendance_reconciler.mark_slot_attendance(db, day1.id, True)

    summary = await earnings.guard_monthly_shift_summary(db, guard.id, 2024, 4)
    assert summary.month == "2024-04"
    assert (summary.total_day_shifts, summary.total_night_shifts, summary.total_shifts) == (1, 0, 1)
    assert summary.attendance_rate == 50.0


@pytest.mark.asyncio
async def test_site_shift_summary(db):
    site = await make_site(db, day_slots=2, night_slots=1)
    a = await make_guard(db, "甲")
    await assignment_rules.create_shift(db, site.id, a.id, "day")
    summary = await earnings.site_shift_summary(db, site.id)
    assert (summary.total_day_slots, summary.day_slots_filled, summary.day_percentage) == (2, 1, 50.0)
    assert (summary.total_night_slots, summary.night_slots_filled, summary.night_percentage) == (1, 0, 0)


@pytest.mark.asyncio
async def test_build_earnings_excel(db):
    site = await make_site(db, day_slots=1, night_slots=0)
    guard = await make_guard(db, "甲", badge="A001")
    await _mark_present_days(db, site, guard, date(2024, 4, 1), 3)
    rows = await earnings.get_all_guards_monthly_earnings(db, 2024, 4)

    content = build_earnings_excel(rows, 2024, 4)
    ws = load_workbook(io.BytesIO(content)).active
    assert [c.value for c in ws[2]] == EXCEL_HEADERS
    assert ws.cell(row=3, column=1).value == "A001"
    assert ws.cell(row=3, column=5).value == 3
    assert ws.cell(row=4, column=1).value == "合計"
    assert ws.cell(row=4, column=9).value == 3000.0
