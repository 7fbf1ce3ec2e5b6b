"""API 請求/回應結構 - Pydantic"""
from datetime import date, datetime
from decimal import Decimal

# 別名：欄位名 date 與型別 date 會觸發 Pydantic 的 field name clashing，改用 DateType 註解
DateType = date
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator

from roster.models import SHIFT_TYPES, GUARD_STATUSES, GUARD_TYPES, RATE_TYPES, ATTENDANCE_STATUSES, PAYMENT_TYPES


def _check_choice(v: Optional[str], choices, field: str) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if v not in choices:
        raise ValueError(f"{field} 須為: {list(choices)}")
    return v


# ---------- 案場 / 人力需求 ----------
class StaffingRequirementBase(BaseModel):
    role_type: str = Field(..., min_length=1, description="職務")
    day_slots: int = Field(0, ge=0, description="日班 slot 數")
    night_slots: int = Field(0, ge=0, description="夜班 slot 數")
    budget_per_slot: Decimal = Field(Decimal("0"), ge=0, description="每 slot 預算")
    rate_type: str = Field("monthly", description="monthly / per_shift")

    @field_validator("rate_type")
    @classmethod
    def _rate_type(cls, v):
        return _check_choice(v, RATE_TYPES, "rate_type")


class StaffingRequirementCreate(StaffingRequirementBase):
    pass


class StaffingRequirementRead(StaffingRequirementBase):
    id: int
    site_id: int
    model_config = ConfigDict(from_attributes=True)


class SiteBase(BaseModel):
    name: str = Field(..., min_length=1, description="案場名稱")
    organization_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    address_line3: Optional[str] = None
    site_category: Optional[str] = None
    day_slots: int = Field(0, ge=0, description="舊版日班人數")
    night_slots: int = Field(0, ge=0, description="舊版夜班人數")
    pay_rate: Optional[Decimal] = Field(None, ge=0, description="舊版每 slot 預算")
    monthly_budget: Optional[Decimal] = Field(None, ge=0, description="案場月預算")
    is_active: bool = True
    notes: Optional[str] = None


class SiteCreate(SiteBase):
    staffing_requirements: List[StaffingRequirementCreate] = Field(default_factory=list)


class SiteUpdate(BaseModel):
    """staffing_requirements 有帶時整組取代。"""
    name: Optional[str] = None
    organization_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    address_line3: Optional[str] = None
    site_category: Optional[str] = None
    day_slots: Optional[int] = Field(None, ge=0)
    night_slots: Optional[int] = Field(None, ge=0)
    pay_rate: Optional[Decimal] = Field(None, ge=0)
    monthly_budget: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    notes: Optional[str] = None
    staffing_requirements: Optional[List[StaffingRequirementCreate]] = None


class SiteRead(SiteBase):
    id: int
    address: Optional[str] = None
    staffing_requirements: List[StaffingRequirementRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SiteShiftSummary(BaseModel):
    site_id: int
    site_name: str
    total_day_slots: int = 0
    total_night_slots: int = 0
    day_slots_filled: int = 0
    night_slots_filled: int = 0
    day_percentage: float = 0
    night_percentage: float = 0


# ---------- 保全員 ----------
class GuardBase(BaseModel):
    name: str = Field(..., min_length=1, description="姓名")
    badge_number: str = Field(..., min_length=1, description="員工編號（唯一）")
    status: str = Field("active", description="active / inactive")
    type: str = Field("permanent", description="permanent / temporary")
    pay_rate: Decimal = Field(Decimal("0"), ge=0, description="月薪")
    phone: Optional[str] = None
    email: Optional[str] = None
    id_number: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_choice(v, GUARD_STATUSES, "status")

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        return _check_choice(v, GUARD_TYPES, "type")


class GuardCreate(GuardBase):
    pass


class GuardUpdate(BaseModel):
    name: Optional[str] = None
    badge_number: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    pay_rate: Optional[Decimal] = Field(None, ge=0)
    phone: Optional[str] = None
    email: Optional[str] = None
    id_number: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_choice(v, GUARD_STATUSES, "status")

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        return _check_choice(v, GUARD_TYPES, "type")


class GuardRead(GuardBase):
    id: int
    shift_rate: Decimal = Field(Decimal("0"), description="每班單價 = 月薪 / 當月天數")
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 固定班 ----------
class ShiftBase(BaseModel):
    site_id: int = Field(..., description="案場 ID")
    guard_id: Optional[int] = Field(None, description="保全 ID（臨時班可空）")
    type: str = Field(..., description="day / night")

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "type")


class ShiftCreate(ShiftBase):
    pass


class ShiftRead(ShiftBase):
    id: int
    is_temporary: bool = False
    temporary_role: Optional[str] = None
    temporary_pay_rate: Optional[Decimal] = None
    created_for_date: Optional[DateType] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TemporaryShiftCreate(BaseModel):
    site_id: int
    type: str = Field(..., description="day / night")
    created_for_date: DateType = Field(..., description="臨時班日期")
    temporary_role: Optional[str] = None
    temporary_pay_rate: Optional[Decimal] = Field(None, ge=0)
    guard_id: Optional[int] = None

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "type")


class AllocationRequest(BaseModel):
    """整組取代某案場某班別的保全名單（須傳入完整名單）。"""
    site_id: int
    shift_type: str = Field(..., description="day / night")
    guard_ids: List[int] = Field(default_factory=list)
    clear_attendance_on: Optional[DateType] = Field(None, description="被移除者於此日在本案場的出勤一併刪除")

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "shift_type")


class ReassignRequest(BaseModel):
    from_shift_id: int
    to_shift_id: int
    attendance_date: Optional[DateType] = Field(None, description="調班日期：跨案場時原案場當日記 reassigned")


class CopyTemporaryShiftsRequest(BaseModel):
    site_id: int
    from_date: DateType
    to_date: DateType


# ---------- 每日 slot ----------
class SlotRead(BaseModel):
    id: int
    site_id: int
    attendance_date: DateType
    shift_type: str
    role_type: str
    slot_number: int
    assigned_guard_id: Optional[int] = None
    is_present: Optional[bool] = None
    is_temporary: bool = False
    pay_rate: Optional[Decimal] = None
    model_config = ConfigDict(from_attributes=True)


class SlotWithGuard(SlotRead):
    guard_name: Optional[str] = None
    badge_number: Optional[str] = None


class SlotDateRequest(BaseModel):
    site_id: int
    attendance_date: DateType


class CopySlotsRequest(BaseModel):
    site_id: int
    current_date: DateType
    previous_date: Optional[DateType] = Field(None, description="未填則為 current_date 前一天")


class RegenerateResult(BaseModel):
    created: List[SlotRead] = Field(default_factory=list)
    excess_slot_ids: List[int] = Field(default_factory=list, description="超出目前人力需求的 slot，需人工清理")
    slots: List[SlotRead] = Field(default_factory=list)


class CopySlotsResult(BaseModel):
    copied: int = 0
    skipped: int = 0
    skipped_guard_ids: List[int] = Field(default_factory=list)
    slots: List[SlotRead] = Field(default_factory=list)


class SlotAssignRequest(BaseModel):
    guard_id: int


class SlotMarkRequest(BaseModel):
    is_present: bool


class TemporarySlotCreate(BaseModel):
    site_id: int
    attendance_date: DateType
    shift_type: str
    role_type: str = Field(..., min_length=1)
    pay_rate: Optional[Decimal] = Field(None, ge=0)

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "shift_type")


# ---------- 出勤 ----------
class AttendanceRecordRead(BaseModel):
    id: int
    attendance_date: DateType
    site_id: int
    guard_id: int
    shift_type: str
    shift_id: Optional[int] = None
    slot_id: Optional[int] = None
    status: str
    is_temporary: bool = False
    replacement_guard_id: Optional[int] = None
    reassigned_site_id: Optional[int] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AttendanceMarkRequest(BaseModel):
    site_id: int
    guard_id: int
    attendance_date: DateType
    shift_type: str
    status: str = Field("present", description="present / absent")
    notes: Optional[str] = None

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "shift_type")

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_choice(v, ("present", "absent"), "status")


class AttendanceUnmarkRequest(BaseModel):
    site_id: int
    guard_id: int
    attendance_date: DateType
    shift_type: str

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "shift_type")


class AttendanceReplaceRequest(AttendanceUnmarkRequest):
    replacement_guard_id: int
    notes: Optional[str] = None


class BulkMarkRequest(BaseModel):
    site_id: int
    attendance_date: DateType
    shift_type: str
    guard_ids: List[int] = Field(..., min_length=1)
    status: str = Field("present", description="present / absent")

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, v):
        return _check_choice(v, SHIFT_TYPES, "shift_type")

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_choice(v, ("present", "absent"), "status")


class BulkItemFailure(BaseModel):
    item_id: int
    reason: str


class BulkResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    failures: List[BulkItemFailure] = Field(default_factory=list)


class CopyAttendanceRequest(BaseModel):
    site_id: int
    from_date: DateType
    to_date: DateType


class CopyAttendanceResult(BaseModel):
    copied: int = 0
    skipped: int = 0
    skipped_guard_ids: List[int] = Field(default_factory=list)
    records: List[AttendanceRecordRead] = Field(default_factory=list)


class ResetAttendanceRequest(BaseModel):
    site_id: int
    attendance_date: DateType


class ShiftCounts(BaseModel):
    present: int = 0
    absent: int = 0
    total: int = 0


class AttendanceSummary(BaseModel):
    site_id: int
    attendance_date: DateType
    day_shift: ShiftCounts = Field(default_factory=ShiftCounts)
    night_shift: ShiftCounts = Field(default_factory=ShiftCounts)


class GuardAttendanceStats(BaseModel):
    guard_id: int
    total_days: int = 0
    present_days: int = 0
    absent_days: int = 0
    attendance_percentage: int = 0


# ---------- 獎金 / 扣款 ----------
class PaymentRecordBase(BaseModel):
    guard_id: int
    payment_date: DateType
    amount: Decimal = Field(..., gt=0)
    type: str = Field(..., description="bonus / deduction")
    month: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM，空則取 payment_date 月份")
    note: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        return _check_choice(v, PAYMENT_TYPES, "type")


class PaymentRecordCreate(PaymentRecordBase):
    pass


class PaymentRecordRead(PaymentRecordBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 收入彙總 ----------
class GuardMonthlyEarnings(BaseModel):
    guard_id: int
    guard_name: str
    badge_number: Optional[str] = None
    year: int
    month: int
    days_in_month: int
    daily_rate: Decimal = Decimal("0")
    shifts_present: int = 0
    base_salary: Decimal = Decimal("0")
    total_bonus: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")


class SiteMonthlyEarnings(BaseModel):
    site_id: int
    site_name: str
    year: int
    month: int
    total_shifts: int = 0
    allocated_amount: Decimal = Decimal("0")
    guard_costs: Decimal = Decimal("0")
    net_earnings: Decimal = Decimal("0")


class GuardMonthlyShiftSummary(BaseModel):
    guard_id: int
    guard_name: str
    month: str = Field(..., description="YYYY-MM")
    total_day_shifts: int = 0
    total_night_shifts: int = 0
    total_shifts: int = 0
    attendance_rate: float = 0
