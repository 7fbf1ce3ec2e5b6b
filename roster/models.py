"""資料庫模型 - 保全排班出勤：案場 / 人力需求 / 保全員 / 固定班 / 每日 slot / 出勤紀錄 / 獎懲紀錄。
出勤狀態一律以 attendance_records 為準；slot 的 is_present 標記會同步寫入對應紀錄（slot_id）。"""
from calendar import monthrange
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import (
    String, Date, Text, Numeric, ForeignKey, DateTime, Boolean, Integer, UniqueConstraint, Index, CheckConstraint, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from roster.database import Base

SHIFT_TYPES = ("day", "night")  # 日班 / 夜班
GUARD_STATUSES = ("active", "inactive")
GUARD_TYPES = ("permanent", "temporary")  # 正職 / 臨時（約聘）
RATE_TYPES = ("monthly", "per_shift")
ATTENDANCE_STATUSES = ("present", "absent", "replaced", "reassigned")
PAYMENT_TYPES = ("bonus", "deduction")


class Site(Base):
    """案場。人力需求優先看 staffing_requirements；沒有時退回舊版 day_slots / night_slots / pay_rate。"""
    __tablename__ = "sites"
    __table_args__ = (
        CheckConstraint("day_slots >= 0", name="ck_sites_day_slots"),
        CheckConstraint("night_slots >= 0", name="ck_sites_night_slots"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), comment="案場名稱")
    organization_name: Mapped[Optional[str]] = mapped_column(String(200), comment="客戶/機構名稱")
    address: Mapped[Optional[str]] = mapped_column(String(500), comment="完整地址（由 address_line1~3 組成）")
    address_line1: Mapped[Optional[str]] = mapped_column(String(200))
    address_line2: Mapped[Optional[str]] = mapped_column(String(200))
    address_line3: Mapped[Optional[str]] = mapped_column(String(200))
    site_category: Mapped[Optional[str]] = mapped_column(String(50), comment="案場類別")
    day_slots: Mapped[int] = mapped_column(Integer, default=0, comment="舊版：日班人數")
    night_slots: Mapped[int] = mapped_column(Integer, default=0, comment="舊版：夜班人數")
    pay_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), comment="舊版：每 slot 月預算")
    monthly_budget: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), comment="案場月預算（空則由人力需求推算）")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, comment="備註")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    staffing_requirements: Mapped[List["StaffingRequirement"]] = relationship(
        "StaffingRequirement",
        back_populates="site",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StaffingRequirement.id",
    )


class StaffingRequirement(Base):
    """案場人力需求：某職務日班幾個、夜班幾個 slot，每 slot 預算。"""
    __tablename__ = "staffing_requirements"
    __table_args__ = (
        CheckConstraint("day_slots >= 0", name="ck_staffing_day_slots"),
        CheckConstraint("night_slots >= 0", name="ck_staffing_night_slots"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id", ondelete="CASCADE"), index=True)
    role_type: Mapped[str] = mapped_column(String(50), comment="職務，如 Security Guard / Supervisor")
    day_slots: Mapped[int] = mapped_column(Integer, default=0, comment="日班 slot 數")
    night_slots: Mapped[int] = mapped_column(Integer, default=0, comment="夜班 slot 數")
    budget_per_slot: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, comment="每 slot 預算")
    rate_type: Mapped[str] = mapped_column(String(20), default="monthly", comment="monthly / per_shift")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    site: Mapped["Site"] = relationship("Site", back_populates="staffing_requirements")


class Guard(Base):
    """保全員。pay_rate 為月薪；shift_rate（每班單價）= 月薪 / 當月天數。"""
    __tablename__ = "guards"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), comment="姓名")
    badge_number: Mapped[str] = mapped_column(String(50), unique=True, index=True, comment="員工編號（唯一）")
    status: Mapped[str] = mapped_column(String(20), default="active", comment="active / inactive")
    type: Mapped[str] = mapped_column(String(20), default="permanent", comment="permanent / temporary")
    pay_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, comment="月薪")
    phone: Mapped[Optional[str]] = mapped_column(String(30))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    id_number: Mapped[Optional[str]] = mapped_column(String(50), comment="身分證件號碼")
    address: Mapped[Optional[str]] = mapped_column(String(500))
    notes: Mapped[Optional[str]] = mapped_column(Text, comment="備註")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def shift_rate(self) -> Decimal:
        today = date.today()
        days = monthrange(today.year, today.month)[1]
        return (Decimal(self.pay_rate or 0) / days).quantize(Decimal("0.01"))


class Shift(Base):
    """固定班：某案場某班別由誰擔任（不綁日期）。臨時班以 created_for_date 綁定單一日期。"""
    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id", ondelete="CASCADE"), index=True)
    guard_id: Mapped[Optional[int]] = mapped_column(ForeignKey("guards.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(10), comment="day / night")
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False, comment="臨時班，不計入案場人力上限")
    temporary_role: Mapped[Optional[str]] = mapped_column(String(50))
    temporary_pay_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    created_for_date: Mapped[Optional[date]] = mapped_column(Date, index=True, comment="臨時班所屬日期")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class DailyAttendanceSlot(Base):
    """每日 slot：某案場某日某班別某職務第 N 個位置。is_present=None 表示已指派未點名。"""
    __tablename__ = "daily_attendance_slots"
    __table_args__ = (
        UniqueConstraint(
            "site_id", "attendance_date", "shift_type", "role_type", "slot_number", "is_temporary",
            name="uq_daily_slot_position",
        ),
        Index("ix_daily_slots_guard_date_shift", "assigned_guard_id", "attendance_date", "shift_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id", ondelete="CASCADE"), index=True)
    attendance_date: Mapped[date] = mapped_column(Date, index=True)
    shift_type: Mapped[str] = mapped_column(String(10), comment="day / night")
    role_type: Mapped[str] = mapped_column(String(50))
    slot_number: Mapped[int] = mapped_column(Integer)
    assigned_guard_id: Mapped[Optional[int]] = mapped_column(ForeignKey("guards.id", ondelete="SET NULL"))
    is_present: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False)
    pay_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_guard: Mapped[Optional["Guard"]] = relationship("Guard")


class AttendanceRecord(Base):
    """出勤紀錄。同一保全同日同班別全系統最多一筆 present（partial unique index）。"""
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("guard_id", "site_id", "attendance_date", "shift_type", name="uq_attendance_guard_site_date_shift"),
        Index(
            "uq_attendance_present_guard_date_shift",
            "guard_id", "attendance_date", "shift_type",
            unique=True,
            sqlite_where=text("status = 'present'"),
            postgresql_where=text("status = 'present'"),
        ),
        Index("ix_attendance_site_date", "site_id", "attendance_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    attendance_date: Mapped[date] = mapped_column(Date, index=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id", ondelete="CASCADE"))
    guard_id: Mapped[int] = mapped_column(ForeignKey("guards.id", ondelete="CASCADE"), index=True)
    shift_type: Mapped[str] = mapped_column(String(10), comment="day / night")
    shift_id: Mapped[Optional[int]] = mapped_column(ForeignKey("shifts.id", ondelete="SET NULL"))
    slot_id: Mapped[Optional[int]] = mapped_column(ForeignKey("daily_attendance_slots.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="present", comment="present / absent / replaced / reassigned")
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False, comment="臨時 slot/班，不計入人力上限")
    replacement_guard_id: Mapped[Optional[int]] = mapped_column(ForeignKey("guards.id", ondelete="SET NULL"))
    reassigned_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("sites.id", ondelete="SET NULL"))
    approved_by: Mapped[Optional[str]] = mapped_column(String(100))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PaymentRecord(Base):
    """獎金 / 扣款紀錄（month = YYYY-MM）"""
    __tablename__ = "payment_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    guard_id: Mapped[int] = mapped_column(ForeignKey("guards.id", ondelete="CASCADE"), index=True)
    payment_date: Mapped[date] = mapped_column(Date, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    type: Mapped[str] = mapped_column(String(20), comment="bonus / deduction")
    month: Mapped[Optional[str]] = mapped_column(String(7), index=True, comment="YYYY-MM")
    note: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
