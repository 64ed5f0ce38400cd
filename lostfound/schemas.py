from pydantic import BaseModel, ConfigDict, constr, field_validator
from datetime import datetime
from typing import Optional, Literal

from .config import settings


class UserCreate(BaseModel):
    """
    ユーザー登録時のモデル

    Attributes
    ----------
    username : str
        ユーザー名。1文字以上、50文字以下（前後の空白は除去）
    email : str
        メールアドレス。ログインIDとして使用します。
    password : str
        パスワード。6文字以上
    """
    username: constr(strip_whitespace=True, min_length=1, max_length=50)
    email: constr(strip_whitespace=True, min_length=3, max_length=254)
    password: str

    @field_validator('password')
    def password_must_be_long_enough(cls, v):
        if len(v) < settings.min_password_length:
            raise ValueError(f'Password must be at least {settings.min_password_length} characters long')
        return v

    @field_validator('email')
    def email_must_look_like_address(cls, v):
        if '@' not in v or v.startswith('@') or v.endswith('@'):
            raise ValueError('Email address is invalid')
        return v.lower()


class LoginRequest(BaseModel):
    """
    ログイン時のモデル（メールアドレスとパスワード）
    """
    email: constr(strip_whitespace=True, min_length=1)
    password: constr(min_length=1)


class User(BaseModel):
    """
    ユーザー取得時のモデル

    Attributes
    ----------
    id : Optional[int]
        ユーザーの一意のID。設定上のスーパー管理者にユーザー行がない場合はNone。
    username : str
        ユーザー名。
    email : str
        メールアドレス。
    role : str
        ``user`` または ``admin``。
    """
    id: Optional[int] = None  # ユーザーの一意のID
    username: str  # ユーザー名
    email: str  # メールアドレス
    role: str  # ロール

    model_config = ConfigDict(from_attributes=True)  # ORM モードを有効にして属性から値を取得できるようにする


class Identity(BaseModel):
    """
    アクセスガードが検証済みトークンから解決した呼び出し元。

    Attributes
    ----------
    id : Optional[int]
        ユーザーID。ユーザー行を持たないスーパー管理者の場合はNone。
    email : str
        トークンに含まれるメールアドレス。
    role : str
        解決されたロール。
    """
    id: Optional[int] = None
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Token(BaseModel):
    """
    トークンのモデル（ログイン・登録時のレスポンス）

    Attributes
    ----------
    access_token : str
        署名付き JWT アクセストークン。
    token_type : str
        トークンのタイプ（例: "bearer"）。
    user : User
        ログインしたユーザー。
    """
    access_token: str  # JWT アクセストークン
    token_type: str = "bearer"  # トークンのタイプ
    user: User


class Poster(BaseModel):
    """投稿者・申請者の公開情報"""
    id: Optional[int] = None
    username: str
    email: Optional[str] = None


class Item(BaseModel):
    """
    アイテム取得時のモデル（IDやタイムスタンプを含む）

    Attributes
    ----------
    id : int
        アイテムの一意のID。
    title, description, location : str
        投稿内容。
    image_url : Optional[str]
        画像の参照先。
    status : str
        ``active`` または ``claimed``。
    posted_by : int
        投稿者のユーザーID。
    created_at : datetime
        アイテムが作成された日時。
    poster : Optional[Poster]
        一覧・詳細取得時に結合される投稿者情報。
    """
    id: int
    title: str
    description: str
    location: str
    image_url: Optional[str] = None
    status: str
    posted_by: int
    created_at: datetime
    poster: Optional[Poster] = None

    model_config = ConfigDict(from_attributes=True)


class OwnedItem(Item):
    """自分のアイテム一覧用（クレーム件数付き）"""
    claims_count: int = 0


class AdminItem(Item):
    """管理者向けアイテム一覧用（クレーム件数と投稿者の連絡先付き）"""
    claims_count: int = 0


class ClaimItem(BaseModel):
    """クレーム一覧に結合されるアイテム情報"""
    id: int
    title: str
    image_url: Optional[str] = None


class Claim(BaseModel):
    """
    クレーム取得時のモデル

    Attributes
    ----------
    id : int
        クレームの一意のID。
    item_id : int
        対象アイテムのID。
    claimed_by : int
        申請者のユーザーID。
    message : str
        申請メッセージ。
    proof_image_url : Optional[str]
        証明画像の参照先。
    status : str
        ``pending`` / ``approved`` / ``rejected``。
    created_at : datetime
        申請日時。
    """
    id: int
    item_id: int
    claimed_by: int
    message: str
    proof_image_url: Optional[str] = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimDetail(Claim):
    """自分のアイテムに届いたクレーム一覧用（アイテムと申請者の情報付き）"""
    item: ClaimItem
    claimant: Poster


class AdminUser(User):
    """管理者向けユーザー一覧用（投稿数・クレーム数付き）"""
    created_at: Optional[datetime] = None
    items_count: int = 0
    claims_count: int = 0


class RoleUpdate(BaseModel):
    """ロール変更リクエスト"""
    role: Literal["user", "admin"]


class Message(BaseModel):
    """処理結果のメッセージ"""
    detail: str
