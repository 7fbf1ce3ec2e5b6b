"""初始結構：sites / staffing_requirements / guards / shifts / daily_attendance_slots / attendance_records / payment_records

Revision ID: 001
Revises:
Create Date: 2024-01-08

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False, comment="案場名稱"),
        sa.Column("organization_name", sa.String(200), nullable=True, comment="客戶/機構名稱"),
        sa.Column("address", sa.String(500), nullable=True, comment="完整地址（由 address_line1~3 組成）"),
        sa.Column("address_line1", sa.String(200), nullable=True),
        sa.Column("address_line2", sa.String(200), nullable=True),
        sa.Column("address_line3", sa.String(200), nullable=True),
        sa.Column("site_category", sa.String(50), nullable=True, comment="案場類別"),
        sa.Column("day_slots", sa.Integer(), nullable=False, server_default="0", comment="舊版：日班人數"),
        sa.Column("night_slots", sa.Integer(), nullable=False, server_default="0", comment="舊版：夜班人數"),
        sa.Column("pay_rate", sa.Numeric(12, 2), nullable=True, comment="舊版：每 slot 月預算"),
        sa.Column("monthly_budget", sa.Numeric(12, 2), nullable=True, comment="案場月預算（空則由人力需求推算）"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True, comment="備註"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("day_slots >= 0", name="ck_sites_day_slots"),
        sa.CheckConstraint("night_slots >= 0", name="ck_sites_night_slots"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "staffing_requirements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("role_type", sa.String(50), nullable=False, comment="職務，如 Security Guard / Supervisor"),
        sa.Column("day_slots", sa.Integer(), nullable=False, server_default="0", comment="日班 slot 數"),
        sa.Column("night_slots", sa.Integer(), nullable=False, server_default="0", comment="夜班 slot 數"),
        sa.Column("budget_per_slot", sa.Numeric(12, 2), nullable=False, server_default="0", comment="每 slot 預算"),
        sa.Column("rate_type", sa.String(20), nullable=False, server_default="monthly", comment="monthly / per_shift"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("day_slots >= 0", name="ck_staffing_day_slots"),
        sa.CheckConstraint("night_slots >= 0", name="ck_staffing_night_slots"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_staffing_requirements_site_id"), "staffing_requirements", ["site_id"], unique=False)

    op.create_table(
        "guards",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False, comment="姓名"),
        sa.Column("badge_number", sa.String(50), nullable=False, comment="員工編號（唯一）"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", comment="active / inactive"),
        sa.Column("type", sa.String(20), nullable=False, server_default="permanent", comment="permanent / temporary"),
        sa.Column("pay_rate", sa.Numeric(12, 2), nullable=False, server_default="0", comment="月薪"),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("id_number", sa.String(50), nullable=True, comment="身分證件號碼"),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True, comment="備註"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_guards_badge_number"), "guards", ["badge_number"], unique=True)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("guard_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(10), nullable=False, comment="day / night"),
        sa.Column("is_temporary", sa.Boolean(), nullable=False, server_default=sa.false(), comment="臨時班，不計入案場人力上限"),
        sa.Column("temporary_role", sa.String(50), nullable=True),
        sa.Column("temporary_pay_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_for_date", sa.Date(), nullable=True, comment="臨時班所屬日期"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["guard_id"], ["guards.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_shifts_site_id"), "shifts", ["site_id"], unique=False)
    op.create_index(op.f("ix_shifts_guard_id"), "shifts", ["guard_id"], unique=False)
    op.create_index(op.f("ix_shifts_created_for_date"), "shifts", ["created_for_date"], unique=False)

    op.create_table(
        "daily_attendance_slots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("shift_type", sa.String(10), nullable=False, comment="day / night"),
        sa.Column("role_type", sa.String(50), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("assigned_guard_id", sa.Integer(), nullable=True),
        sa.Column("is_present", sa.Boolean(), nullable=True),
        sa.Column("is_temporary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pay_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_guard_id"], ["guards.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "site_id", "attendance_date", "shift_type", "role_type", "slot_number", "is_temporary",
            name="uq_daily_slot_position",
        ),
    )
    op.create_index(op.f("ix_daily_attendance_slots_site_id"), "daily_attendance_slots", ["site_id"], unique=False)
    op.create_index(op.f("ix_daily_attendance_slots_attendance_date"), "daily_attendance_slots", ["attendance_date"], unique=False)
    op.create_index(
        "ix_daily_slots_guard_date_shift", "daily_attendance_slots",
        ["assigned_guard_id", "attendance_date", "shift_type"], unique=False,
    )

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("guard_id", sa.Integer(), nullable=False),
        sa.Column("shift_type", sa.String(10), nullable=False, comment="day / night"),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("slot_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="present", comment="present / absent / replaced / reassigned"),
        sa.Column("is_temporary", sa.Boolean(), nullable=False, server_default=sa.false(), comment="臨時 slot/班，不計入人力上限"),
        sa.Column("replacement_guard_id", sa.Integer(), nullable=True),
        sa.Column("reassigned_site_id", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.String(100), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["guard_id"], ["guards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["slot_id"], ["daily_attendance_slots.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["replacement_guard_id"], ["guards.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reassigned_site_id"], ["sites.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("guard_id", "site_id", "attendance_date", "shift_type", name="uq_attendance_guard_site_date_shift"),
    )
    op.create_index(op.f("ix_attendance_records_attendance_date"), "attendance_records", ["attendance_date"], unique=False)
    op.create_index(op.f("ix_attendance_records_guard_id"), "attendance_records", ["guard_id"], unique=False)
    op.create_index(op.f("ix_attendance_records_slot_id"), "attendance_records", ["slot_id"], unique=False)
    op.create_index("ix_attendance_site_date", "attendance_records", ["site_id", "attendance_date"], unique=False)
    # 同一保全同日同班別全系統最多一筆 present
    op.create_index(
        "uq_attendance_present_guard_date_shift",
        "attendance_records",
        ["guard_id", "attendance_date", "shift_type"],
        unique=True,
        sqlite_where=sa.text("status = 'present'"),
        postgresql_where=sa.text("status = 'present'"),
    )

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("guard_id", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, comment="bonus / deduction"),
        sa.Column("month", sa.String(7), nullable=True, comment="YYYY-MM"),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["guard_id"], ["guards.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payment_records_guard_id"), "payment_records", ["guard_id"], unique=False)
    op.create_index(op.f("ix_payment_records_payment_date"), "payment_records", ["payment_date"], unique=False)
    op.create_index(op.f("ix_payment_records_month"), "payment_records", ["month"], unique=False)


def downgrade() -> None:
    op.drop_table("payment_records")
    op.drop_index("uq_attendance_present_guard_date_shift", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_table("daily_attendance_slots")
    op.drop_table("shifts")
    op.drop_index(op.f("ix_guards_badge_number"), table_name="guards")
    op.drop_table("guards")
    op.drop_table("staffing_requirements")
    op.drop_table("sites")
