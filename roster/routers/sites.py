"""案場管理 API：案場 CRUD（含人力需求）、固定班配置統計。"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.database import get_db
from roster import crud, schemas
from roster.services import earnings

router = APIRouter(prefix="/api/sites", tags=["sites"])

# 錯誤回傳格式：FastAPI 預設 { "detail": "訊息" }；404/422 皆以 detail 回傳中文
RESPONSE_404 = {404: {"description": "資源不存在", "content": {"application/json": {"example": {"detail": "案場不存在"}}}}}
RESPONSE_422 = {422: {"description": "請求參數或 body 驗證失敗"}}


@router.get("", response_model=List[schemas.SiteRead], summary="案場列表")
async def list_sites(
    include_inactive: bool = Query(False, description="是否包含停用案場"),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_sites(db, include_inactive=include_inactive)
    return [schemas.SiteRead.model_validate(s) for s in items]


@router.get("/{site_id}", response_model=schemas.SiteRead, summary="取得單一案場", responses=RESPONSE_404)
async def get_site(site_id: int, db: AsyncSession = Depends(get_db)):
    site = await crud.get_site(db, site_id)
    if not site:
        raise HTTPException(status_code=404, detail="案場不存在")
    return schemas.SiteRead.model_validate(site)


@router.post("", response_model=schemas.SiteRead, status_code=201, summary="新增案場", responses=RESPONSE_422)
async def create_site(data: schemas.SiteCreate, db: AsyncSession = Depends(get_db)):
    site = await crud.create_site(db, data)
    return schemas.SiteRead.model_validate(site)


@router.patch("/{site_id}", response_model=schemas.SiteRead, summary="更新案場（帶 staffing_requirements 則整組取代）", responses={**RESPONSE_404, **RESPONSE_422})
async def update_site(site_id: int, data: schemas.SiteUpdate, db: AsyncSession = Depends(get_db)):
    site = await crud.get_site(db, site_id)
    if not site:
        raise HTTPException(status_code=404, detail="案場不存在")
    site = await crud.update_site(db, site, data)
    return schemas.SiteRead.model_validate(site)


@router.delete("/{site_id}", status_code=204, summary="刪除案場（一併刪除班別、slot、出勤）", responses=RESPONSE_404)
async def delete_site(site_id: int, db: AsyncSession = Depends(get_db)):
    site = await crud.get_site(db, site_id)
    if not site:
        raise HTTPException(status_code=404, detail="案場不存在")
    await crud.delete_site(db, site)


@router.get("/{site_id}/shift-summary", response_model=schemas.SiteShiftSummary, summary="固定班已排人數 vs. 設定 slot 數", responses=RESPONSE_404)
async def site_shift_summary(site_id: int, db: AsyncSession = Depends(get_db)):
    return await earnings.site_shift_summary(db, site_id)
