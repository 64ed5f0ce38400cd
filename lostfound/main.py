import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import database, errors
from .config import settings
from .routers import admin, auth, claims, items

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lost & Found")


@app.on_event("startup")
async def on_startup():
    """
    アプリケーションの起動時にデータベースのテーブルを作成します。

    このイベントハンドラーは、アプリケーションが起動する際に呼び出され、
    データベース接続を確立し、全てのテーブルを自動的に作成します。
    """
    async with database.engine.begin() as conn:
        await conn.run_sync(database.Base.metadata.create_all)


@app.exception_handler(errors.LostFoundError)
async def lost_found_error_handler(request: Request, exc: errors.LostFoundError) -> JSONResponse:
    # すべての業務エラーは {"detail", "kind"} の形で返す
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "kind": exc.kind},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [error.get("msg", "Invalid value") for error in exc.errors()]
    return JSONResponse(
        status_code=errors.ValidationError.status_code,
        content={
            "detail": "; ".join(messages) or errors.ValidationError.default_detail,
            "kind": errors.ValidationError.kind,
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} の処理中にデータベースエラーが発生しました: {exc}")
    return JSONResponse(
        status_code=errors.DependencyFailure.status_code,
        content={"detail": errors.DependencyFailure.default_detail, "kind": errors.DependencyFailure.kind},
    )


# ルーターの登録
app.include_router(auth.router)
app.include_router(items.router)
app.include_router(claims.router)
app.include_router(admin.router)


def run() -> None:
    """設定されたホストとポートでAPIサーバーを起動します。"""
    import uvicorn

    uvicorn.run("lostfound.main:app", host=settings.api_host, port=settings.api_port)
