from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint
from .database import BaseDatabase


ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

ITEM_ACTIVE = "active"
ITEM_CLAIMED = "claimed"

CLAIM_PENDING = "pending"
CLAIM_APPROVED = "approved"
CLAIM_REJECTED = "rejected"


class User(BaseDatabase):
    """
    ユーザーモデル。ログイン情報とロールを保持します。

    Attributes
    ----------
    id : sqlalchemy.Column
        ユーザーの一意な識別子。プライマリキーであり、インデックスが作成されています。
    username : sqlalchemy.Column
        表示用のユーザー名。必須項目です。
    email : sqlalchemy.Column
        ログインに使用するメールアドレス。ユニークであり、インデックスが作成されています。
    password_hash : sqlalchemy.Column
        パスワードとサーバーシークレットから計算したハッシュ。必須項目です。
    role : sqlalchemy.Column
        ``user`` または ``admin``。デフォルトは ``user`` です。
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_USER)


class Item(BaseDatabase):
    """
    落とし物・拾い物の投稿モデル。

    Attributes
    ----------
    id : sqlalchemy.Column
        アイテムの一意な識別子。
    title, description, location : sqlalchemy.Column
        投稿内容。いずれも必須です。
    image_url : sqlalchemy.Column
        画像の参照先。画像がない場合はNULL。
    posted_by : sqlalchemy.Column
        投稿者（所有者）のユーザーID。
    status : sqlalchemy.Column
        ``active`` または ``claimed``。承認されたクレームによってのみ ``claimed`` になります。
    """
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String, nullable=False)
    image_url = Column(String, nullable=True)
    posted_by = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String(16), nullable=False, default=ITEM_ACTIVE)


class Claim(BaseDatabase):
    """
    アイテムに対する所有権の申し立て（クレーム）モデル。

    同じユーザーが同じアイテムに出せるクレームは1件のみです（``uq_claims_item_claimant``）。
    """
    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("item_id", "claimed_by", name="uq_claims_item_claimant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), index=True, nullable=False)
    claimed_by = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    message = Column(Text, nullable=False)
    proof_image_url = Column(String, nullable=True)
    status = Column(String(16), nullable=False, default=CLAIM_PENDING)
