"""
月收入彙總（唯讀，每次由出勤 / 獎懲紀錄重算，不另存結果）。

保全：
- 日薪 daily_rate = 月薪 / 該月天數（四捨五入到分）
- 底薪 base_salary = 當月 present 次數 × daily_rate
- 實領 net_amount = 底薪 + 當月獎金合計 − 當月扣款合計（依 payment_date 落在該月）
案場：
- allocated_amount = 案場月預算（見 staffing.site_monthly_budget）
- guard_costs = 當月在本案場每筆 present × 該保全日薪
- net_earnings = allocated_amount − guard_costs
"""
from calendar import monthrange
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from roster import crud, schemas
from roster.crud import NotFoundError
from roster.models import Guard, PaymentRecord
from roster.services.staffing import shift_capacity, site_monthly_budget

CENT = Decimal("0.01")


def _money(v) -> Decimal:
    return Decimal(v or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def month_range(year: int, month: int) -> Tuple[date, date]:
    """指定年月的 (第一天, 最後一天)"""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def daily_rate(monthly_pay_rate, days: int) -> Decimal:
    if days <= 0:
        return Decimal("0.00")
    return _money(Decimal(monthly_pay_rate or 0) / days)


def sum_payments(payments: Iterable[PaymentRecord]) -> Tuple[Decimal, Decimal]:
    """(獎金合計, 扣款合計)"""
    bonus = Decimal("0")
    deduction = Decimal("0")
    for p in payments:
        if p.type == "bonus":
            bonus += Decimal(p.amount or 0)
        elif p.type == "deduction":
            deduction += Decimal(p.amount or 0)
    return _money(bonus), _money(deduction)


def compute_guard_earnings(
    guard: Guard,
    year: int,
    month: int,
    shifts_present: int,
    payments: Iterable[PaymentRecord],
) -> schemas.GuardMonthlyEarnings:
    days = days_in_month(year, month)
    rate = daily_rate(guard.pay_rate, days)
    base = _money(rate * shifts_present)
    bonus, deduction = sum_payments(payments)
    return schemas.GuardMonthlyEarnings(
        guard_id=guard.id,
        guard_name=guard.name,
        badge_number=guard.badge_number,
        year=year,
        month=month,
        days_in_month=days,
        daily_rate=rate,
        shifts_present=shifts_present,
        base_salary=base,
        total_bonus=bonus,
        total_deductions=deduction,
        net_amount=_money(base + bonus - deduction),
    )


async def get_guard_monthly_earnings(db: AsyncSession, guard_id: int, year: int, month: int) -> schemas.GuardMonthlyEarnings:
    guard = await crud.get_guard(db, guard_id)
    if not guard:
        raise NotFoundError("保全不存在")
    first, last = month_range(year, month)
    present = await crud.list_present_records_in_range(db, first, last, guard_id=guard_id)
    payments = await crud.list_payment_records(db, guard_id=guard_id, start_date=first, end_date=last)
    return compute_guard_earnings(guard, year, month, len(present), payments)


async def get_all_guards_monthly_earnings(db: AsyncSession, year: int, month: int) -> List[schemas.GuardMonthlyEarnings]:
    """全部保全（含離職者，只要當月有出勤或獎懲）"""
    first, last = month_range(year, month)
    present_count: Dict[int, int] = {}
    for rec in await crud.list_present_records_in_range(db, first, last):
        present_count[rec.guard_id] = present_count.get(rec.guard_id, 0) + 1
    payments_by_guard: Dict[int, List[PaymentRecord]] = {}
    for p in await crud.list_payment_records(db, start_date=first, end_date=last):
        payments_by_guard.setdefault(p.guard_id, []).append(p)

    rows = []
    for guard in await crud.list_guards(db):
        if guard.status != "active" and guard.id not in present_count and guard.id not in payments_by_guard:
            continue
        rows.append(compute_guard_earnings(
            guard, year, month, present_count.get(guard.id, 0), payments_by_guard.get(guard.id, []),
        ))
    return rows


async def get_site_monthly_earnings(db: AsyncSession, site_id: int, year: int, month: int) -> schemas.SiteMonthlyEarnings:
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    first, last = month_range(year, month)
    days = days_in_month(year, month)
    records = await crud.list_present_records_in_range(db, first, last, site_id=site_id)
    guards = {g.id: g for g in await crud.get_guards_by_ids(db, [r.guard_id for r in records])}
    costs = Decimal("0")
    for rec in records:
        guard = guards.get(rec.guard_id)
        if guard is not None:
            costs += daily_rate(guard.pay_rate, days)
    allocated = site_monthly_budget(site, days)
    costs = _money(costs)
    return schemas.SiteMonthlyEarnings(
        site_id=site.id,
        site_name=site.name,
        year=year,
        month=month,
        total_shifts=len(records),
        allocated_amount=allocated,
        guard_costs=costs,
        net_earnings=_money(allocated - costs),
    )


async def guard_monthly_shift_summary(db: AsyncSession, guard_id: int, year: int, month: int) -> schemas.GuardMonthlyShiftSummary:
    """當月日班 / 夜班 present 次數；出勤率 = present / 當月被指派的 slot 數（無 slot 時以出勤紀錄數為分母）"""
    guard = await crud.get_guard(db, guard_id)
    if not guard:
        raise NotFoundError("保全不存在")
    first, last = month_range(year, month)
    present = await crud.list_present_records_in_range(db, first, last, guard_id=guard_id)
    day = sum(1 for r in present if r.shift_type == "day")
    night = len(present) - day
    assigned = len(await crud.list_slots_by_guard_and_date_range(db, guard_id, first, last))
    if not assigned:
        assigned = len(await crud.list_attendance_by_guard_and_date_range(db, guard_id, first, last))
    rate = round(min(len(present) / assigned, 1) * 100, 1) if assigned else 0
    return schemas.GuardMonthlyShiftSummary(
        guard_id=guard.id,
        guard_name=guard.name,
        month=crud.month_key(first),
        total_day_shifts=day,
        total_night_shifts=night,
        total_shifts=len(present),
        attendance_rate=rate,
    )


async def site_shift_summary(db: AsyncSession, site_id: int) -> schemas.SiteShiftSummary:
    """固定班已排人數 vs. 設定 slot 數"""
    site = await crud.get_site(db, site_id)
    if not site:
        raise NotFoundError("案場不存在")
    shifts = [sh for sh in await crud.list_shifts_by_site(db, site_id) if sh.guard_id is not None]
    total_day = shift_capacity(site, "day")
    total_night = shift_capacity(site, "night")
    filled_day = sum(1 for sh in shifts if sh.type == "day")
    filled_night = sum(1 for sh in shifts if sh.type == "night")
    return schemas.SiteShiftSummary(
        site_id=site.id,
        site_name=site.name,
        total_day_slots=total_day,
        total_night_slots=total_night,
        day_slots_filled=filled_day,
        night_slots_filled=filled_night,
        day_percentage=round(filled_day * 100 / total_day, 1) if total_day else 0,
        night_percentage=round(filled_night * 100 / total_night, 1) if total_night else 0,
    )
