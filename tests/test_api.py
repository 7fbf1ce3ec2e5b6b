"""
API 端對端測試（httpx ASGITransport + 記憶體 SQLite）。
覆蓋：建案場 / 保全、員工編號重複 409、產生 slot、指派、點名、跨案場衝突 409、Excel 匯出。
"""
import io
import pytest
from httpx import AsyncClient, ASGITransport
from openpyxl import load_workbook

from roster.database import get_db
from roster.main import app


@pytest.fixture
async def client(async_engine_and_session):
    _, async_session = async_engine_and_session

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_site(client, name, day=1, night=0):
    r = await client.post("/api/sites", json={"name": name, "day_slots": day, "night_slots": night, "pay_rate": "30000"})
    assert r.status_code == 201
    return r.json()


async def _create_guard(client, name, badge):
    r = await client.post("/api/guards", json={"name": name, "badge_number": badge, "pay_rate": "30000"})
    assert r.status_code == 201
    return r.json()


@pytest.mark.asyncio
async def test_home(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert "message" in r.json()


@pytest.mark.asyncio
async def test_duplicate_badge_conflict(client):
    await _create_guard(client, "甲", "A001")
    r = await client.post("/api/guards", json={"name": "乙", "badge_number": "A001"})
    assert r.status_code == 409
    assert r.json()["detail"] == "員工編號已存在"


@pytest.mark.asyncio
async def test_missing_resources_return_404(client):
    assert (await client.get("/api/sites/9999")).status_code == 404
    assert (await client.get("/api/guards/9999")).status_code == 404
    r = await client.post("/api/slots/generate", json={"site_id": 9999, "attendance_date": "2024-04-01"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_slot_flow_and_cross_site_conflict(client):
    x = await _create_site(client, "X")
    y = await _create_site(client, "Y")
    guard = await _create_guard(client, "甲", "A001")

    r = await client.post("/api/slots/generate", json={"site_id": x["id"], "attendance_date": "2024-04-01"})
    assert r.status_code == 200
    x_slot = r.json()[0]
    r = await client.post("/api/slots/generate", json={"site_id": y["id"], "attendance_date": "2024-04-01"})
    y_slot = r.json()[0]

    r = await client.put(f"/api/slots/{x_slot['id']}/guard", json={"guard_id": guard["id"]})
    assert r.status_code == 200
    assert r.json()["assigned_guard_id"] == guard["id"]

    r = await client.put(f"/api/slots/{x_slot['id']}/attendance", json={"is_present": True})
    assert r.status_code == 200
    assert r.json()["is_present"] is True

    r = await client.get("/api/slots", params={"site_id": x["id"], "date": "2024-04-01"})
    assert r.json()[0]["guard_name"] == "甲"

    r = await client.get("/api/attendance", params={"date": "2024-04-01", "site_id": x["id"]})
    records = r.json()
    assert len(records) == 1
    assert records[0]["status"] == "present"
    assert records[0]["slot_id"] == x_slot["id"]

    # 同日同班別已在 X → Y 不可再指派
    r = await client.put(f"/api/slots/{y_slot['id']}/guard", json={"guard_id": guard["id"]})
    assert r.status_code == 409

    r = await client.delete(f"/api/slots/{x_slot['id']}/guard")
    assert r.status_code == 200
    r = await client.get("/api/attendance", params={"date": "2024-04-01"})
    assert r.json() == []


@pytest.mark.asyncio
async def test_shift_mark_and_capacity(client):
    site = await _create_site(client, "X", day=1)
    a = await _create_guard(client, "甲", "A001")
    b = await _create_guard(client, "乙", "A002")
    r = await client.put("/api/shifts/allocation", json={"site_id": site["id"], "shift_type": "day", "guard_ids": [a["id"], b["id"]]})
    assert r.status_code == 200
    assert len(r.json()) == 2

    body = {"site_id": site["id"], "attendance_date": "2024-04-01", "shift_type": "day"}
    r = await client.post("/api/attendance/mark", json={**body, "guard_id": a["id"]})
    assert r.status_code == 200
    r = await client.post("/api/attendance/mark", json={**body, "guard_id": b["id"]})
    assert r.status_code == 409

    r = await client.get("/api/attendance/summary", params={"site_id": site["id"], "date": "2024-04-01"})
    assert r.json()["day_shift"]["present"] == 1

    r = await client.post("/api/attendance/reset", json={"site_id": site["id"], "attendance_date": "2024-04-01"})
    assert r.json() == {"deleted": 1}


@pytest.mark.asyncio
async def test_earnings_and_export(client):
    site = await _create_site(client, "X", day=1)
    guard = await _create_guard(client, "甲", "A001")
    r = await client.post("/api/shifts", json={"site_id": site["id"], "guard_id": guard["id"], "type": "day"})
    assert r.status_code == 201
    for day in ("2024-04-01", "2024-04-02"):
        r = await client.post("/api/attendance/mark", json={
            "site_id": site["id"], "guard_id": guard["id"], "attendance_date": day, "shift_type": "day",
        })
        assert r.status_code == 200
    r = await client.post("/api/payments", json={
        "guard_id": guard["id"], "payment_date": "2024-04-10", "amount": "500", "type": "bonus",
    })
    assert r.status_code == 201
    assert r.json()["month"] == "2024-04"

    r = await client.get(f"/api/earnings/guards/{guard['id']}", params={"year": 2024, "month": 4})
    assert r.status_code == 200
    data = r.json()
    assert data["shifts_present"] == 2
    assert float(data["net_amount"]) == 2500.0

    r = await client.get("/api/earnings/guards/export", params={"year": 2024, "month": 4})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats")
    ws = load_workbook(io.BytesIO(r.content)).active
    assert ws.cell(row=3, column=2).value == "甲"

    r = await client.get("/api/earnings/guards", params={"year": 2024, "month": 13})
    assert r.status_code == 422
