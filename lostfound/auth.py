import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Union

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from . import schemas, crud, models, errors
from .dependencies import get_db

logger = logging.getLogger(__name__)

# パスワード + サーバーシークレットのSHA-256ダイジェスト（決定的・一方向）
pwd_context = CryptContext(schemes=["hex_sha256"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

# 設定上のスーパー管理者がユーザー行なしでログインした場合のトークンのsub
BOOTSTRAP_ADMIN_SUBJECT = "bootstrap-admin"


def get_password_hash(password: str) -> str:
    """
    パスワードとサーバーシークレットを連結してハッシュ化します。

    同じパスワードとシークレットからは常に同じハッシュが得られます。

    Parameters
    ----------
    password : str
        ハッシュ化対象のプレーンテキストパスワード。

    Returns
    -------
    str
        16進表記のハッシュ。
    """
    return pwd_context.hash(password + settings.password_secret)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    プレーンテキストのパスワードが保存済みハッシュと一致するかを検証します。

    比較は定数時間で行われます。保存済みハッシュの形式が不正な場合はFalseを返します。

    Parameters
    ----------
    plain_password : str
        検証対象のプレーンテキストパスワード。
    hashed_password : str
        比較対象となるハッシュ。

    Returns
    -------
    bool
        パスワードが一致する場合はTrue、そうでない場合はFalse。
    """
    try:
        return pwd_context.verify(plain_password + settings.password_secret, hashed_password)
    except (ValueError, TypeError):
        return False


def create_jwt_token(
        data: Dict[str, Any],
        secret_key: str,
        algorithm: str,
        expires_delta: Optional[timedelta] = None
        ) -> str:
    """
    指定されたデータと有効期限を持つJSON Web Token (JWT) を作成します。

    Parameters
    ----------
    data : Dict[str, Any]
        トークンに含めるペイロードデータ。
    secret_key : str
        トークンの署名に使用するシークレットキー。
    algorithm : str
        トークンの署名に使用するアルゴリズム。
    expires_delta : Optional[timedelta], optional
        トークンの有効期限を設定する時間差。指定しない場合は7日後に設定されます。

    Returns
    -------
    str
        エンコードされたJWT。
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(days=7)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    指定されたクレームでアクセストークンを発行します。

    Parameters
    ----------
    data : Dict[str, Any]
        ``sub``、``email`` と任意の ``role`` を含むクレーム。
    expires_delta : Optional[timedelta], optional
        有効期限。指定しない場合は設定ファイルの日数が使用されます。

    Returns
    -------
    str
        署名済みのアクセストークン。
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.access_token_expire_days)
    return create_jwt_token(
        data,
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        expires_delta=expires_delta
    )


def decode_token(token: str, secret_key: str, algorithms: List[str]) -> Dict:
    """
    JWTをデコードし、そのペイロードを返します。署名・有効期限が不正な場合はJWTErrorを送出します。
    """
    return jwt.decode(
        token,
        secret_key,
        algorithms=algorithms,
        options={"require_exp": True, "require_sub": True},
    )


def verify_token(token: str) -> Optional[Dict]:
    """
    アクセストークンを検証し、クレームを返します。

    形式不正、署名不一致、有効期限切れのいずれの場合も例外は送出せずNoneを返します。

    Parameters
    ----------
    token : str
        検証対象のトークン。

    Returns
    -------
    Optional[Dict]
        有効な場合はデコードされたクレーム、無効な場合はNone。
    """
    try:
        return decode_token(token, settings.secret_key, [settings.algorithm])
    except JWTError as e:
        logger.info(f"トークンの検証に失敗しました: {e}")
        return None


def token_for_user(user: Union[models.User, schemas.User]) -> str:
    """
    ユーザーのアクセストークンを発行します。

    ``role`` クレームはユーザー行を持たないスーパー管理者のトークンにのみ含めます。
    それ以外のユーザーのロールはリクエストごとにユーザー行から解決されるため、
    昇格・降格は発行済みのトークンにも即座に反映されます。
    """
    if user.id is None:
        return create_access_token({"sub": BOOTSTRAP_ADMIN_SUBJECT, "email": user.email, "role": user.role})
    return create_access_token({"sub": str(user.id), "email": user.email})


def bootstrap_admin_user() -> schemas.User:
    """設定上のスーパー管理者を表すユーザーレコードを合成します。"""
    return schemas.User(
        id=None,
        username=settings.super_admin_username,
        email=settings.super_admin_email,
        role=models.ROLE_ADMIN,
    )


def is_bootstrap_login(email: str, password: str) -> bool:
    if not settings.super_admin_email or not settings.super_admin_password:
        return False
    return settings.is_super_admin_email(email) and password == settings.super_admin_password


async def authenticate_user(
        db: AsyncSession,
        email: str,
        password: str
        ) -> Optional[schemas.User]:
    """
    メールアドレスとパスワードを用いてユーザーを認証します。

    設定上のスーパー管理者の組み合わせはデータベースを参照せずに最初に判定されます。

    Parameters
    ----------
    db : AsyncSession
        ユーザーを取得するためのデータベースセッション。
    email : str
        認証を試みるユーザーのメールアドレス。
    password : str
        ユーザーが提供したプレーンテキストパスワード。

    Returns
    -------
    Optional[schemas.User]
        認証に成功した場合はユーザーを返し、失敗した場合はNoneを返します。
        ユーザーが存在しない場合とパスワードが違う場合は区別しません。
    """
    if is_bootstrap_login(email, password):
        logger.info("設定上のスーパー管理者としてログインします。")
        return bootstrap_admin_user()

    try:
        user = await crud.get_user_by_email(db, email=email.lower())
    except SQLAlchemyError as e:
        logger.error(f"ユーザー検索中にデータベースエラーが発生しました: {e}")
        raise errors.DependencyFailure()
    if not user or not verify_password(password, user.password_hash):
        return None
    return public_user(user)


def public_user(user: models.User) -> schemas.User:
    """ユーザー行を公開用のモデルに変換します。スーパー管理者のロールは常に ``admin`` です。"""
    public = schemas.User.model_validate(user)
    if settings.is_super_admin_email(public.email):
        public.role = models.ROLE_ADMIN
    return public


async def register_user(db: AsyncSession, user_create: schemas.UserCreate) -> models.User:
    """
    新しいユーザーを登録します。

    Raises
    ------
    errors.Conflict
        メールアドレスが既に登録されている場合。
    errors.DependencyFailure
        データベースへの書き込みに失敗した場合。
    """
    try:
        existing = await crud.get_user_by_email(db, email=user_create.email)
    except SQLAlchemyError as e:
        logger.error(f"ユーザー検索中にデータベースエラーが発生しました: {e}")
        raise errors.DependencyFailure()
    if existing:
        raise errors.Conflict("User already exists with this email")

    try:
        return await crud.create_user(
            db,
            username=user_create.username,
            email=user_create.email,
            password_hash=get_password_hash(user_create.password),
        )
    except IntegrityError:
        await db.rollback()
        raise errors.Conflict("User already exists with this email")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"ユーザーの作成に失敗しました: {e}")
        raise errors.DependencyFailure("Failed to create user")


def resolve_role(claims: Dict, db_user: Optional[models.User]) -> str:
    """
    トークンのクレームとユーザー行から実効ロールを解決します。

    優先順位はトークンの ``role`` クレーム、ユーザー行のロール、``user`` の順です。
    ``role`` クレームを持つのはスーパー管理者のトークンのみで、通常のユーザーの
    ロールは毎回ユーザー行から読み取られます。
    設定上のスーパー管理者のメールアドレスは常に ``admin`` になります。
    """
    if settings.is_super_admin_email(claims.get("email")):
        return models.ROLE_ADMIN

    role = claims.get("role")
    if role in models.ROLES:
        return role

    if db_user is not None and db_user.role in models.ROLES:
        return db_user.role
    return models.ROLE_USER


async def get_current_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db)
        ) -> schemas.Identity:
    """
    提供されたJWTに基づいて現在の呼び出し元を解決します。

    保護されたすべてのエンドポイントはこの依存関係を経由します。
    スーパー管理者以外のトークンは、対応するユーザー行が存在する場合のみ有効です。

    Parameters
    ----------
    token : Optional[str]
        ``Authorization: Bearer`` ヘッダーのトークン。
    db : AsyncSession
        データベースセッション。依存関係として取得されます。

    Raises
    ------
    errors.Unauthenticated
        トークンがない、無効・期限切れ、またはユーザーが削除済みの場合に発生します。

    Returns
    -------
    schemas.Identity
        認証された呼び出し元。
    """
    if not token:
        raise errors.Unauthenticated("Authentication required")

    claims = verify_token(token)
    if claims is None:
        raise errors.Unauthenticated("Invalid token")

    subject = claims.get("sub")
    email = claims.get("email") or ""
    if subject == BOOTSTRAP_ADMIN_SUBJECT:
        if not settings.is_super_admin_email(email):
            raise errors.Unauthenticated("Invalid token")
        user_id = None
        db_user = None
    else:
        try:
            user_id = int(subject)
        except (TypeError, ValueError):
            raise errors.Unauthenticated("Invalid token")
        db_user = await crud.get_user(db, user_id=user_id)
        if db_user is None:
            logger.warning(f"削除済みユーザー (id={user_id}) のトークンを拒否しました。")
            raise errors.Unauthenticated("Invalid token")

    role = resolve_role(claims, db_user)
    return schemas.Identity(id=user_id, email=email, role=role)


def require_role(identity: schemas.Identity, role: str) -> None:
    """
    呼び出し元が指定されたロールを持つことを確認します。``admin`` は ``user`` の権限も持ちます。

    Raises
    ------
    errors.Forbidden
        権限が不足している場合。
    """
    if role == models.ROLE_ADMIN and not identity.is_admin:
        logger.warning(f"管理者権限のないアクセスを拒否しました: {identity.email}")
        raise errors.Forbidden("Admin access required")


async def require_admin(current_user: schemas.Identity = Depends(get_current_user)) -> schemas.Identity:
    """管理者専用エンドポイントの依存関係。"""
    require_role(current_user, models.ROLE_ADMIN)
    return current_user


def require_user_record(identity: schemas.Identity) -> int:
    """
    ユーザー行を持つ呼び出し元のIDを返します。

    設定上のスーパー管理者はユーザー行を持たないため、アイテムやクレームの所有者になれません。
    """
    if identity.id is None:
        raise errors.Forbidden("This account has no user record and cannot own items or claims")
    return identity.id
