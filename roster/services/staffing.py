"""
案場人力配置之純函式：由案場設定推出每日應有的 slot、各班別人力上限、月預算。

人力設定來源（擇一）：
- staffing_requirements：每筆職務各自的日班 / 夜班 slot 數與每 slot 預算。
- 舊版平面設定：site.day_slots / site.night_slots / site.pay_rate，職務一律視為 settings.default_role_type。
有任何一筆 staffing_requirements 時忽略舊版設定。
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from roster.config import settings
from roster.models import Site, SHIFT_TYPES


@dataclass(frozen=True)
class SlotSpec:
    """一個應有的 slot 位置（尚未落地成 DailyAttendanceSlot）"""
    shift_type: str
    role_type: str
    slot_number: int
    pay_rate: Optional[Decimal]

    @property
    def key(self):
        return (self.shift_type, self.role_type, self.slot_number)


def _count_for(obj, shift_type: str) -> int:
    n = obj.day_slots if shift_type == "day" else obj.night_slots
    return max(int(n or 0), 0)


def uses_legacy_config(site: Site) -> bool:
    return not site.staffing_requirements


def staffing_plan(site: Site) -> List[SlotSpec]:
    """
    案場每日 slot 清單，排序：日班在前、職務依設定順序、slot_number 由 1 起。
    沒有任何人力設定時回傳空清單。
    """
    specs: List[SlotSpec] = []
    for shift_type in SHIFT_TYPES:
        if uses_legacy_config(site):
            for n in range(1, _count_for(site, shift_type) + 1):
                specs.append(SlotSpec(shift_type, settings.default_role_type, n, site.pay_rate))
            continue
        for req in site.staffing_requirements:
            for n in range(1, _count_for(req, shift_type) + 1):
                specs.append(SlotSpec(shift_type, req.role_type, n, req.budget_per_slot))
    return specs


def shift_capacity(site: Site, shift_type: str) -> int:
    """某班別的正式人力上限（臨時 slot 不計）"""
    if uses_legacy_config(site):
        return _count_for(site, shift_type)
    return sum(_count_for(req, shift_type) for req in site.staffing_requirements)


def site_monthly_budget(site: Site, days_in_month: int) -> Decimal:
    """
    案場月預算（allocated amount）。
    有 monthly_budget 直接用；否則依人力需求推算：monthly 為每 slot 月額，per_shift 為每班單價 × 當月天數。
    """
    if site.monthly_budget is not None:
        return Decimal(site.monthly_budget).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    total = Decimal("0")
    if uses_legacy_config(site):
        total = Decimal(site.pay_rate or 0) * (_count_for(site, "day") + _count_for(site, "night"))
    else:
        for req in site.staffing_requirements:
            slots = _count_for(req, "day") + _count_for(req, "night")
            amount = Decimal(req.budget_per_slot or 0) * slots
            if req.rate_type == "per_shift":
                amount *= days_in_month
            total += amount
    return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
