"""保全排班出勤管理系統 - API"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roster.config import settings
from roster.crud import RosterError, ConflictError, NotFoundError, RuleValidationError, RemoteError
from roster.routers import (
    sites,
    guards,
    shifts,
    slots,
    attendance,
    payments,
    earnings,
)

logging.basicConfig(
    level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 規則層錯誤 → HTTP 狀態碼
ERROR_STATUS = {
    ConflictError: 409,
    NotFoundError: 404,
    RuleValidationError: 400,
    RemoteError: 502,
}

app = FastAPI(
    title=settings.app_name,
    description="Security guard roster & attendance API",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sites.router)
app.include_router(guards.router)
app.include_router(shifts.router)
app.include_router(slots.router)
app.include_router(attendance.router)
app.include_router(payments.router)
app.include_router(earnings.router)


@app.exception_handler(RosterError)
async def roster_error_handler(request: Request, exc: RosterError):
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    if isinstance(exc, RemoteError):
        logger.exception("資料庫操作失敗：%s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("未處理的錯誤：%s %s", request.method, request.url.path, exc_info=exc)
    detail = str(exc) if exc else "Internal Server Error"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


@app.get("/")
def home():
    return {"message": f"{settings.app_name}運行中"}
