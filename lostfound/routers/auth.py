# auth_router.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, crud, auth, errors
from ..dependencies import get_db
import logging

# ロガーの設定
logger = logging.getLogger(__name__)

# 認証用のルーターを設定
router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/register", response_model=schemas.Token, status_code=status.HTTP_201_CREATED)
async def register(
        user: schemas.UserCreate,
        db: AsyncSession = Depends(get_db)
        ) -> schemas.Token:
    """
    新しいユーザーを登録し、アクセストークンを発行します。

    登録時のトークンにはロールを含めないため、ロールは毎回データベースから解決されます。

    Args:
        user (schemas.UserCreate): ユーザー名、メールアドレス、パスワード。
        db (AsyncSession): データベースセッション。

    Returns:
        schemas.Token: アクセストークンと作成されたユーザー。
    """
    logger.info(f"ユーザー '{user.email}' の登録を試行中。")
    db_user = await auth.register_user(db, user)
    logger.info(f"ユーザー '{db_user.email}' (id={db_user.id}) を登録しました。")
    return schemas.Token(
        access_token=auth.token_for_user(db_user),
        token_type="bearer",
        user=auth.public_user(db_user),
    )


@router.post("/login", response_model=schemas.Token)
async def login_for_access_token(
        credentials: schemas.LoginRequest,
        db: AsyncSession = Depends(get_db)
        ) -> schemas.Token:
    """
    ユーザーの認証情報を受け取り、アクセストークンを発行します。

    Args:
        credentials (schemas.LoginRequest): メールアドレスとパスワード。
        db (AsyncSession): データベースセッション。

    Returns:
        schemas.Token: アクセストークンとロール付きのユーザー情報。
    """
    logger.info(f"ユーザー '{credentials.email}' のログイン試行中。")
    # ユーザーの認証
    user = await auth.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        logger.warning(f"認証失敗: ユーザー '{credentials.email}' の資格情報が不正です。")
        raise errors.InvalidCredentials()

    access_token = auth.token_for_user(user)
    logger.info(f"ユーザー '{credentials.email}' のトークン発行成功（ロール: {user.role}）。")

    return schemas.Token(
        access_token=access_token,
        token_type="bearer",
        user=user
    )


@router.get("/me", response_model=schemas.User)
async def read_current_user(
        current_user: schemas.Identity = Depends(auth.get_current_user),
        db: AsyncSession = Depends(get_db)
        ) -> schemas.User:
    """
    現在のトークンに対応するユーザー情報を返します。

    ユーザー行を持たないスーパー管理者には合成したレコードを返します。
    ロールはアクセスガードが解決したものを使用します。
    """
    if current_user.id is None:
        return auth.bootstrap_admin_user()

    db_user = await crud.get_user(db, user_id=current_user.id)
    if db_user is None:
        logger.warning(f"トークンに対応するユーザー (id={current_user.id}) が見つかりません。")
        raise errors.NotFound("User not found")
    user = auth.public_user(db_user)
    user.role = current_user.role
    return user
