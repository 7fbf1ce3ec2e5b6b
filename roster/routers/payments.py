"""獎金 / 扣款紀錄 API"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas

router = APIRouter(prefix="/api/payments", tags=["payments"])

RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "獎懲紀錄不存在"}}}}}


@router.get("", response_model=List[schemas.PaymentRecordRead], summary="獎懲紀錄列表")
async def list_payments(
    guard_id: Optional[int] = Query(None, description="保全 ID"),
    start_date: Optional[date] = Query(None, description="起始日"),
    end_date: Optional[date] = Query(None, description="結束日（含）"),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_payment_records(db, guard_id=guard_id, start_date=start_date, end_date=end_date)
    return [schemas.PaymentRecordRead.model_validate(p) for p in items]


@router.post("", response_model=schemas.PaymentRecordRead, status_code=201, summary="新增獎金或扣款", responses=RESPONSE_404)
async def create_payment(data: schemas.PaymentRecordCreate, db: AsyncSession = Depends(get_db)):
    if not await crud.get_guard(db, data.guard_id):
        raise HTTPException(status_code=404, detail="保全不存在")
    rec = await crud.create_payment_record(db, data)
    return schemas.PaymentRecordRead.model_validate(rec)


@router.delete("/{payment_id}", status_code=204, summary="刪除獎懲紀錄", responses=RESPONSE_404)
async def delete_payment(payment_id: int, db: AsyncSession = Depends(get_db)):
    rec = await crud.get_payment_record(db, payment_id)
    if not rec:
        raise HTTPException(status_code=404, detail="獎懲紀錄不存在")
    await crud.delete_payment_record(db, rec)
