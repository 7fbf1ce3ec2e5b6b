"""CRUD 操作 - 案場、保全、固定班、每日 slot、出勤紀錄、獎懲紀錄。
規則層（services/）只透過本模組存取資料；多步驟寫入（先刪後建）不包交易，中途失敗可能留下部分狀態。"""
import logging
from datetime import date, datetime
from typing import Optional, List, Iterable
from sqlalchemy import select, func, or_, and_, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from roster.models import (
    Site, StaffingRequirement, Guard, Shift, DailyAttendanceSlot, AttendanceRecord, PaymentRecord,
)
from roster.schemas import (
    SiteCreate, SiteUpdate, GuardCreate, GuardUpdate, PaymentRecordCreate,
)

logger = logging.getLogger(__name__)


# ---------- 錯誤分類 ----------
class RosterError(ValueError):
    """規則層錯誤基底"""
    pass


class ConflictError(RosterError):
    """保全已在他處出勤 / 已指派，或班別人數已滿"""
    pass


class NotFoundError(RosterError):
    """要異動的 slot / 班別 / 出勤紀錄不存在"""
    pass


class RuleValidationError(RosterError):
    """缺必要欄位或參數不合法（送出前即擋下）"""
    pass


class RemoteError(RosterError):
    """資料庫寫入失敗（連線、伺服器端限制）"""
    pass


async def _flush(db: AsyncSession, conflict_message: Optional[str] = None) -> None:
    """flush 並轉換錯誤：有 conflict_message 時唯一性衝突視為 ConflictError，其餘包成 RemoteError。"""
    try:
        await db.flush()
    except IntegrityError as e:
        logger.warning("寫入違反唯一性或外鍵限制：%s", e.orig)
        if conflict_message:
            raise ConflictError(conflict_message) from e
        raise RemoteError(f"資料寫入失敗：{e.orig}") from e
    except SQLAlchemyError as e:
        raise RemoteError(f"資料庫操作失敗：{e}") from e


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


# ---------- 案場 sites ----------
async def get_site(db: AsyncSession, site_id: int) -> Optional[Site]:
    r = await db.execute(select(Site).where(Site.id == site_id))
    return r.scalar_one_or_none()


async def list_sites(db: AsyncSession, include_inactive: bool = False) -> List[Site]:
    q = select(Site).order_by(Site.created_at.desc(), Site.id.desc())
    if not include_inactive:
        q = q.where(Site.is_active == True)  # noqa: E712
    r = await db.execute(q)
    return list(r.scalars().all())


def _join_address(*lines: Optional[str]) -> Optional[str]:
    """address_line1~3 合併成完整地址（相容舊欄位 address）"""
    parts = [p.strip() for p in lines if p and p.strip()]
    return ", ".join(parts) if parts else None


async def create_site(db: AsyncSession, data: SiteCreate) -> Site:
    raw = data.model_dump(exclude={"staffing_requirements"})
    raw["address"] = _join_address(data.address_line1, data.address_line2, data.address_line3)
    site = Site(**raw)
    site.staffing_requirements = [StaffingRequirement(**req.model_dump()) for req in data.staffing_requirements]
    db.add(site)
    await _flush(db)
    await db.refresh(site)
    return site


async def update_site(db: AsyncSession, site: Site, data: SiteUpdate) -> Site:
    update_data = data.model_dump(exclude_unset=True, exclude={"staffing_requirements"})
    for k, v in update_data.items():
        setattr(site, k, v)
    if {"address_line1", "address_line2", "address_line3"} & update_data.keys():
        site.address = _join_address(site.address_line1, site.address_line2, site.address_line3)
    if data.staffing_requirements is not None:
        # 整組取代：delete-orphan 會刪除舊需求
        site.staffing_requirements = [StaffingRequirement(**req.model_dump()) for req in data.staffing_requirements]
    await _flush(db)
    await db.refresh(site)
    return site


async def delete_site(db: AsyncSession, site: Site) -> None:
    # SQLite 預設不啟用 FK cascade，先刪出勤、slot、班別
    await db.execute(delete(AttendanceRecord).where(AttendanceRecord.site_id == site.id))
    await db.execute(delete(DailyAttendanceSlot).where(DailyAttendanceSlot.site_id == site.id))
    await db.execute(delete(Shift).where(Shift.site_id == site.id))
    await db.delete(site)
    await _flush(db)


# ---------- 保全 guards ----------
async def get_guard(db: AsyncSession, guard_id: int) -> Optional[Guard]:
    r = await db.execute(select(Guard).where(Guard.id == guard_id))
    return r.scalar_one_or_none()


async def get_guards_by_ids(db: AsyncSession, guard_ids: Iterable[int]) -> List[Guard]:
    ids = list(set(guard_ids))
    if not ids:
        return []
    r = await db.execute(select(Guard).where(Guard.id.in_(ids)))
    return list(r.scalars().all())


async def list_guards(
    db: AsyncSession,
    status: Optional[str] = None,
    guard_type: Optional[str] = None,
    q: Optional[str] = None,
) -> List[Guard]:
    stmt = select(Guard).order_by(Guard.name, Guard.id)
    if status:
        stmt = stmt.where(Guard.status == status)
    if guard_type:
        stmt = stmt.where(Guard.type == guard_type)
    if q and q.strip():
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Guard.name.ilike(like), Guard.badge_number.ilike(like)))
    r = await db.execute(stmt)
    return list(r.scalars().all())


async def create_guard(db: AsyncSession, data: GuardCreate) -> Guard:
    guard = Guard(**data.model_dump())
    db.add(guard)
    await _flush(db, conflict_message="員工編號已存在")
    await db.refresh(guard)
    return guard


async def update_guard(db: AsyncSession, guard: Guard, data: GuardUpdate) -> Guard:
    for k, v in data.model_dump(exclude_unset=True).items():
        setattr(guard, k, v)
    await _flush(db, conflict_message="員工編號已存在")
    await db.refresh(guard)
    return guard


async def delete_guard(db: AsyncSession, guard: Guard) -> None:
    # SQLite 預設不啟用 FK cascade，先清掉班別與出勤再刪人
    await db.execute(delete(Shift).where(Shift.guard_id == guard.id))
    await db.execute(delete(AttendanceRecord).where(AttendanceRecord.guard_id == guard.id))
    await db.execute(delete(PaymentRecord).where(PaymentRecord.guard_id == guard.id))
    r = await db.execute(select(DailyAttendanceSlot).where(DailyAttendanceSlot.assigned_guard_id == guard.id))
    for slot in r.scalars().all():
        slot.assigned_guard_id = None
        slot.is_present = None
    await db.delete(guard)
    await _flush(db)


# ---------- 固定班 shifts ----------
async def get_shift(db: AsyncSession, shift_id: int) -> Optional[Shift]:
    r = await db.execute(select(Shift).where(Shift.id == shift_id))
    return r.scalar_one_or_none()


def _shift_valid_on(on_date: Optional[date]):
    """固定班永遠有效；臨時班只在 created_for_date 當天有效。未給日期時只看固定班。"""
    if on_date is None:
        return Shift.is_temporary == False  # noqa: E712
    return or_(Shift.is_temporary == False, Shift.created_for_date == on_date)  # noqa: E712


async def list_shifts_by_site(
    db: AsyncSession,
    site_id: int,
    on_date: Optional[date] = None,
    shift_type: Optional[str] = None,
) -> List[Shift]:
    q = select(Shift).where(Shift.site_id == site_id, _shift_valid_on(on_date)).order_by(Shift.type, Shift.id)
    if shift_type:
        q = q.where(Shift.type == shift_type)
    r = await db.execute(q)
    return list(r.scalars().all())


async def list_shifts_by_guard(db: AsyncSession, guard_id: int) -> List[Shift]:
    r = await db.execute(select(Shift).where(Shift.guard_id == guard_id).order_by(Shift.created_at.desc(), Shift.id.desc()))
    return list(r.scalars().all())


async def list_temporary_shifts(db: AsyncSession, site_id: int, on_date: date) -> List[Shift]:
    r = await db.execute(
        select(Shift)
        .where(Shift.site_id == site_id, Shift.is_temporary == True, Shift.created_for_date == on_date)  # noqa: E712
        .order_by(Shift.type, Shift.id)
    )
    return list(r.scalars().all())


async def find_guard_shift(
    db: AsyncSession,
    site_id: int,
    guard_id: int,
    shift_type: str,
    on_date: Optional[date] = None,
) -> Optional[Shift]:
    """保全在某案場某班別、某日有效的班別；固定班優先。"""
    r = await db.execute(
        select(Shift)
        .where(
            Shift.site_id == site_id,
            Shift.guard_id == guard_id,
            Shift.type == shift_type,
            _shift_valid_on(on_date),
        )
        .order_by(Shift.is_temporary, Shift.id)
    )
    return r.scalars().first()


async def find_guard_shifts_elsewhere(
    db: AsyncSession,
    guard_id: int,
    shift_type: str,
    exclude_site_id: int,
    on_date: Optional[date] = None,
) -> List[Shift]:
    r = await db.execute(
        select(Shift).where(
            Shift.guard_id == guard_id,
            Shift.type == shift_type,
            Shift.site_id != exclude_site_id,
            _shift_valid_on(on_date),
        )
    )
    return list(r.scalars().all())


async def insert_shift(db: AsyncSession, **fields) -> Shift:
    sh = Shift(**fields)
    db.add(sh)
    await _flush(db)
    await db.refresh(sh)
    return sh


async def save_shifts(db: AsyncSession, *shifts: Shift) -> None:
    await _flush(db)
    for sh in shifts:
        await db.refresh(sh)


async def delete_shift(db: AsyncSession, sh: Shift) -> None:
    await db.delete(sh)
    await _flush(db)


async def replace_shifts_for_site(
    db: AsyncSession,
    site_id: int,
    shift_type: str,
    guard_ids: List[int],
) -> List[Shift]:
    """
    整組取代某案場某班別的固定班：先刪除全部，再逐筆新增。
    非原子操作：刪除成功而新增失敗時，該班別會暫時沒有人；重送同一份名單即可補回。
    """
    await db.execute(
        delete(Shift).where(
            Shift.site_id == site_id,
            Shift.type == shift_type,
            Shift.is_temporary == False,  # noqa: E712
        )
    )
    created = []
    for gid in guard_ids:
        sh = Shift(site_id=site_id, guard_id=gid, type=shift_type, is_temporary=False)
        db.add(sh)
        created.append(sh)
    await _flush(db)
    for sh in created:
        await db.refresh(sh)
    return created


# ---------- 每日 slot daily_attendance_slots ----------
async def get_slot(db: AsyncSession, slot_id: int) -> Optional[DailyAttendanceSlot]:
    r = await db.execute(select(DailyAttendanceSlot).where(DailyAttendanceSlot.id == slot_id))
    return r.scalar_one_or_none()


async def list_slots_by_site_and_date(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    load_guard: bool = False,
    is_temporary: Optional[bool] = None,
) -> List[DailyAttendanceSlot]:
    q = (
        select(DailyAttendanceSlot)
        .where(DailyAttendanceSlot.site_id == site_id, DailyAttendanceSlot.attendance_date == on_date)
        .order_by(
            DailyAttendanceSlot.shift_type,
            DailyAttendanceSlot.is_temporary,
            DailyAttendanceSlot.role_type,
            DailyAttendanceSlot.slot_number,
        )
    )
    if is_temporary is not None:
        q = q.where(DailyAttendanceSlot.is_temporary == is_temporary)
    if load_guard:
        # 已在 session 內的 slot 也要重新帶出保全
        q = q.options(selectinload(DailyAttendanceSlot.assigned_guard)).execution_options(populate_existing=True)
    r = await db.execute(q)
    return list(r.scalars().all())


async def list_slots_by_guard_and_date_range(
    db: AsyncSession,
    guard_id: int,
    start_date: date,
    end_date: date,
) -> List[DailyAttendanceSlot]:
    r = await db.execute(
        select(DailyAttendanceSlot)
        .where(
            DailyAttendanceSlot.assigned_guard_id == guard_id,
            DailyAttendanceSlot.attendance_date >= start_date,
            DailyAttendanceSlot.attendance_date <= end_date,
        )
        .order_by(DailyAttendanceSlot.attendance_date, DailyAttendanceSlot.shift_type)
    )
    return list(r.scalars().all())


async def find_guard_slots_on(
    db: AsyncSession,
    guard_id: int,
    on_date: date,
    shift_type: str,
    exclude_slot_id: Optional[int] = None,
) -> List[DailyAttendanceSlot]:
    """保全同日同班別已佔用的 slot（跨所有案場）"""
    q = select(DailyAttendanceSlot).where(
        DailyAttendanceSlot.assigned_guard_id == guard_id,
        DailyAttendanceSlot.attendance_date == on_date,
        DailyAttendanceSlot.shift_type == shift_type,
    )
    if exclude_slot_id is not None:
        q = q.where(DailyAttendanceSlot.id != exclude_slot_id)
    r = await db.execute(q)
    return list(r.scalars().all())


async def insert_slots(db: AsyncSession, slots: List[DailyAttendanceSlot]) -> List[DailyAttendanceSlot]:
    if not slots:
        return []
    db.add_all(slots)
    await _flush(db, conflict_message="該日 slot 已存在")
    for slot in slots:
        await db.refresh(slot)
    return slots


async def next_temporary_slot_number(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    role_type: str,
) -> int:
    current = await db.scalar(
        select(func.max(DailyAttendanceSlot.slot_number)).where(
            DailyAttendanceSlot.site_id == site_id,
            DailyAttendanceSlot.attendance_date == on_date,
            DailyAttendanceSlot.shift_type == shift_type,
            DailyAttendanceSlot.role_type == role_type,
            DailyAttendanceSlot.is_temporary == True,  # noqa: E712
        )
    )
    return int(current or 0) + 1


async def save_slot(db: AsyncSession, slot: DailyAttendanceSlot) -> DailyAttendanceSlot:
    await _flush(db)
    await db.refresh(slot)
    return slot


async def delete_slot(db: AsyncSession, slot: DailyAttendanceSlot) -> None:
    await db.delete(slot)
    await _flush(db)


# ---------- 出勤紀錄 attendance_records ----------
async def get_attendance_record(db: AsyncSession, record_id: int) -> Optional[AttendanceRecord]:
    r = await db.execute(select(AttendanceRecord).where(AttendanceRecord.id == record_id))
    return r.scalar_one_or_none()


async def find_attendance_record(
    db: AsyncSession,
    guard_id: int,
    site_id: int,
    on_date: date,
    shift_type: str,
) -> Optional[AttendanceRecord]:
    r = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.guard_id == guard_id,
            AttendanceRecord.site_id == site_id,
            AttendanceRecord.attendance_date == on_date,
            AttendanceRecord.shift_type == shift_type,
        )
    )
    return r.scalar_one_or_none()


async def list_attendance_by_date(db: AsyncSession, on_date: date) -> List[AttendanceRecord]:
    r = await db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.attendance_date == on_date)
        .order_by(AttendanceRecord.created_at.desc(), AttendanceRecord.id.desc())
    )
    return list(r.scalars().all())


async def list_attendance_by_site_and_date(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    status: Optional[str] = None,
) -> List[AttendanceRecord]:
    q = (
        select(AttendanceRecord)
        .where(AttendanceRecord.site_id == site_id, AttendanceRecord.attendance_date == on_date)
        .order_by(AttendanceRecord.shift_type, AttendanceRecord.id)
    )
    if status:
        q = q.where(AttendanceRecord.status == status)
    r = await db.execute(q)
    return list(r.scalars().all())


async def list_attendance_by_guard_and_date_range(
    db: AsyncSession,
    guard_id: int,
    start_date: date,
    end_date: date,
) -> List[AttendanceRecord]:
    r = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.guard_id == guard_id,
            AttendanceRecord.attendance_date >= start_date,
            AttendanceRecord.attendance_date <= end_date,
        )
        .order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.id.desc())
    )
    return list(r.scalars().all())


async def list_present_records_in_range(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    guard_id: Optional[int] = None,
    site_id: Optional[int] = None,
) -> List[AttendanceRecord]:
    q = select(AttendanceRecord).where(
        AttendanceRecord.status == "present",
        AttendanceRecord.attendance_date >= start_date,
        AttendanceRecord.attendance_date <= end_date,
    )
    if guard_id is not None:
        q = q.where(AttendanceRecord.guard_id == guard_id)
    if site_id is not None:
        q = q.where(AttendanceRecord.site_id == site_id)
    r = await db.execute(q)
    return list(r.scalars().all())


async def find_present_elsewhere(
    db: AsyncSession,
    guard_id: int,
    on_date: date,
    shift_type: str,
    exclude_site_id: Optional[int] = None,
) -> List[AttendanceRecord]:
    """保全同日同班別在其他案場的 present 紀錄"""
    q = select(AttendanceRecord).where(
        AttendanceRecord.guard_id == guard_id,
        AttendanceRecord.attendance_date == on_date,
        AttendanceRecord.shift_type == shift_type,
        AttendanceRecord.status == "present",
    )
    if exclude_site_id is not None:
        q = q.where(AttendanceRecord.site_id != exclude_site_id)
    r = await db.execute(q)
    return list(r.scalars().all())


async def count_present(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    regular_only: bool = True,
    exclude_guard_id: Optional[int] = None,
) -> int:
    conds = [
        AttendanceRecord.site_id == site_id,
        AttendanceRecord.attendance_date == on_date,
        AttendanceRecord.shift_type == shift_type,
        AttendanceRecord.status == "present",
    ]
    if regular_only:
        conds.append(AttendanceRecord.is_temporary == False)  # noqa: E712
    if exclude_guard_id is not None:
        conds.append(AttendanceRecord.guard_id != exclude_guard_id)
    n = await db.scalar(select(func.count(AttendanceRecord.id)).where(and_(*conds)))
    return int(n or 0)


async def upsert_attendance_record(
    db: AsyncSession,
    *,
    guard_id: int,
    site_id: int,
    on_date: date,
    shift_type: str,
    status: str,
    shift_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    is_temporary: bool = False,
    notes: Optional[str] = None,
    replacement_guard_id: Optional[int] = None,
    reassigned_site_id: Optional[int] = None,
) -> AttendanceRecord:
    """同一 (guard, site, date, shift_type) 只留一筆：已存在就更新狀態，否則新增。"""
    rec = await find_attendance_record(db, guard_id, site_id, on_date, shift_type)
    if rec is None:
        rec = AttendanceRecord(
            guard_id=guard_id,
            site_id=site_id,
            attendance_date=on_date,
            shift_type=shift_type,
        )
        db.add(rec)
    rec.status = status
    rec.is_temporary = is_temporary
    if shift_id is not None:
        rec.shift_id = shift_id
    if slot_id is not None:
        rec.slot_id = slot_id
    if notes is not None:
        rec.notes = notes
    if replacement_guard_id is not None:
        rec.replacement_guard_id = replacement_guard_id
    if reassigned_site_id is not None:
        rec.reassigned_site_id = reassigned_site_id
    await _flush(db, conflict_message="該保全同日同班別已在其他案場出勤")
    await db.refresh(rec)
    return rec


async def approve_attendance_record(db: AsyncSession, rec: AttendanceRecord, approved_by: str) -> AttendanceRecord:
    rec.approved_by = approved_by
    rec.approved_at = datetime.utcnow()
    await _flush(db)
    await db.refresh(rec)
    return rec


async def delete_attendance_record(db: AsyncSession, rec: AttendanceRecord) -> None:
    await db.delete(rec)
    await _flush(db)


async def delete_attendance_for_slot(db: AsyncSession, slot: DailyAttendanceSlot) -> int:
    """刪除 slot 對應的出勤紀錄（含以 guard/site/date/shift 對上、未綁 slot_id 的紀錄）"""
    conds = [AttendanceRecord.slot_id == slot.id]
    if slot.assigned_guard_id is not None:
        conds.append(
            and_(
                AttendanceRecord.guard_id == slot.assigned_guard_id,
                AttendanceRecord.site_id == slot.site_id,
                AttendanceRecord.attendance_date == slot.attendance_date,
                AttendanceRecord.shift_type == slot.shift_type,
            )
        )
    r = await db.execute(delete(AttendanceRecord).where(or_(*conds)))
    return r.rowcount or 0


async def delete_present_records(db: AsyncSession, site_id: int, on_date: date) -> int:
    r = await db.execute(
        delete(AttendanceRecord).where(
            AttendanceRecord.site_id == site_id,
            AttendanceRecord.attendance_date == on_date,
            AttendanceRecord.status == "present",
        )
    )
    return r.rowcount or 0


async def delete_present_records_for_guards(
    db: AsyncSession,
    site_id: int,
    on_date: date,
    shift_type: str,
    guard_ids: List[int],
) -> int:
    if not guard_ids:
        return 0
    r = await db.execute(
        delete(AttendanceRecord).where(
            AttendanceRecord.site_id == site_id,
            AttendanceRecord.attendance_date == on_date,
            AttendanceRecord.shift_type == shift_type,
            AttendanceRecord.status == "present",
            AttendanceRecord.guard_id.in_(guard_ids),
        )
    )
    return r.rowcount or 0


# ---------- 獎金 / 扣款 payment_records ----------
async def get_payment_record(db: AsyncSession, payment_id: int) -> Optional[PaymentRecord]:
    r = await db.execute(select(PaymentRecord).where(PaymentRecord.id == payment_id))
    return r.scalar_one_or_none()


async def create_payment_record(db: AsyncSession, data: PaymentRecordCreate) -> PaymentRecord:
    raw = data.model_dump()
    if not raw.get("month"):
        raw["month"] = month_key(data.payment_date)
    rec = PaymentRecord(**raw)
    db.add(rec)
    await _flush(db)
    await db.refresh(rec)
    return rec


async def list_payment_records(
    db: AsyncSession,
    guard_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[PaymentRecord]:
    q = select(PaymentRecord).order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc())
    if guard_id is not None:
        q = q.where(PaymentRecord.guard_id == guard_id)
    if start_date is not None:
        q = q.where(PaymentRecord.payment_date >= start_date)
    if end_date is not None:
        q = q.where(PaymentRecord.payment_date <= end_date)
    r = await db.execute(q)
    return list(r.scalars().all())


async def delete_payment_record(db: AsyncSession, rec: PaymentRecord) -> None:
    await db.delete(rec)
    await _flush(db)
