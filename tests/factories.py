"""測試資料小工具：建立案場 / 保全。"""
from decimal import Decimal

from roster import crud
from roster.schemas import SiteCreate, StaffingRequirementCreate, GuardCreate


async def make_site(db, name="案場A", day_slots=2, night_slots=1, pay_rate="30000", requirements=None, **kw):
    """舊版平面設定案場；requirements 給 [(role, day, night, budget)] 則改用人力需求。"""
    reqs = [
        StaffingRequirementCreate(role_type=role, day_slots=d, night_slots=n, budget_per_slot=Decimal(str(b)))
        for role, d, n, b in (requirements or [])
    ]
    data = SiteCreate(
        name=name,
        day_slots=day_slots,
        night_slots=night_slots,
        pay_rate=Decimal(pay_rate) if pay_rate is not None else None,
        staffing_requirements=reqs,
        **kw,
    )
    return await crud.create_site(db, data)


async def make_guard(db, name="王小明", badge=None, pay_rate="30000", **kw):
    data = GuardCreate(name=name, badge_number=badge or f"G-{name}", pay_rate=Decimal(pay_rate), **kw)
    return await crud.create_guard(db, data)
