from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update, delete, func
from . import models
from typing import Optional, List, Tuple


def _claim_counts():
    # アイテムごとのクレーム件数
    return (
        select(models.Claim.item_id, func.count(models.Claim.id).label("claims_count"))
        .group_by(models.Claim.item_id)
        .subquery()
    )


# ユーザーIDでユーザーを取得する関数
async def get_user(db: AsyncSession, user_id: int) -> Optional[models.User]:
    """
    ユーザーIDでユーザーを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    user_id : int
        取得するユーザーのID。

    Returns
    -------
    Optional[models.User]
        見つかった場合はユーザーオブジェクト、存在しない場合はNone。
    """
    result = await db.execute(select(models.User).filter(models.User.id == user_id))
    return result.scalars().first()

# メールアドレスでユーザーを取得する関数
async def get_user_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    """
    メールアドレスでユーザーを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    email : str
        取得するユーザーのメールアドレス（小文字で保存されています）。

    Returns
    -------
    Optional[models.User]
        見つかった場合はユーザーオブジェクト、存在しない場合はNone。
    """
    result = await db.execute(select(models.User).filter(models.User.email == email))
    return result.scalars().first()

# 全ユーザーを投稿数・クレーム数とともに取得する関数
async def get_users_with_counts(db: AsyncSession) -> List[Tuple[models.User, int, int]]:
    """
    全ユーザーを新しい順に、投稿したアイテム数と提出したクレーム数とともに取得します。

    Returns
    -------
    List[Tuple[models.User, int, int]]
        ``(ユーザー, アイテム数, クレーム数)`` のリスト。
    """
    item_counts = (
        select(models.Item.posted_by, func.count(models.Item.id).label("items_count"))
        .group_by(models.Item.posted_by)
        .subquery()
    )
    claim_counts = (
        select(models.Claim.claimed_by, func.count(models.Claim.id).label("claims_count"))
        .group_by(models.Claim.claimed_by)
        .subquery()
    )
    result = await db.execute(
        select(
            models.User,
            func.coalesce(item_counts.c.items_count, 0),
            func.coalesce(claim_counts.c.claims_count, 0),
        )
        .outerjoin(item_counts, item_counts.c.posted_by == models.User.id)
        .outerjoin(claim_counts, claim_counts.c.claimed_by == models.User.id)
        .order_by(models.User.created_at.desc(), models.User.id.desc())
    )
    return [tuple(row) for row in result.all()]

# 新規ユーザーを作成する関数
async def create_user(
        db: AsyncSession,
        username: str,
        email: str,
        password_hash: str,
        role: str = models.ROLE_USER
        ) -> models.User:
    """
    新しいユーザーを作成します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    username : str
        ユーザー名。
    email : str
        メールアドレス。
    password_hash : str
        ハッシュ化済みのパスワード。
    role : str, optional
        ロール（デフォルトは ``user``）。

    Returns
    -------
    models.User
        作成された新しいユーザーオブジェクト。
    """
    db_user = models.User(username=username, email=email, password_hash=password_hash, role=role)
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

# ユーザーのロールを更新する関数
async def update_user_role(db: AsyncSession, db_user: models.User, role: str) -> models.User:
    db_user.role = role
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

# ユーザーを関連データとともに削除する関数
async def delete_user(db: AsyncSession, db_user: models.User) -> List[str]:
    """
    ユーザーを削除します。

    1つのトランザクションで、ユーザーのクレーム、ユーザーのアイテムに対するクレーム、
    ユーザーのアイテム、ユーザー本人の順に削除します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    db_user : models.User
        削除対象のユーザー。

    Returns
    -------
    List[str]
        削除された行が参照していた画像のリスト。呼び出し側でストレージから削除します。
    """
    owned_item_ids = select(models.Item.id).where(models.Item.posted_by == db_user.id)
    related_claims = (models.Claim.claimed_by == db_user.id) | models.Claim.item_id.in_(owned_item_ids)
    try:
        item_images = await db.execute(
            select(models.Item.image_url).where(models.Item.posted_by == db_user.id)
        )
        proof_images = await db.execute(select(models.Claim.proof_image_url).where(related_claims))
        image_urls = [url for url in list(item_images.scalars().all()) + list(proof_images.scalars().all()) if url]

        await db.execute(
            delete(models.Claim).where(related_claims).execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(models.Item).where(models.Item.posted_by == db_user.id).execution_options(synchronize_session=False)
        )
        await db.delete(db_user)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return image_urls


# アイテムIDで特定のアイテムを取得する関数
async def get_item(db: AsyncSession, item_id: int) -> Optional[models.Item]:
    """
    アイテムIDで特定のアイテムを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_id : int
        取得するアイテムのID。

    Returns
    -------
    Optional[models.Item]
        見つかった場合はアイテムオブジェクト、存在しない場合はNone。
    """
    result = await db.execute(select(models.Item).filter(models.Item.id == item_id))
    return result.scalars().first()

# アイテムを投稿者とともに取得する関数
async def get_item_with_poster(
        db: AsyncSession,
        item_id: int
        ) -> Optional[Tuple[models.Item, Optional[models.User]]]:
    result = await db.execute(
        select(models.Item, models.User)
        .outerjoin(models.User, models.User.id == models.Item.posted_by)
        .filter(models.Item.id == item_id)
    )
    row = result.first()
    return tuple(row) if row else None

# 全アイテムを投稿者とともに取得する関数
async def get_items_with_posters(db: AsyncSession) -> List[Tuple[models.Item, Optional[models.User], int]]:
    """
    全アイテムを新しい順に取得します（ステータスは問いません）。

    Returns
    -------
    List[Tuple[models.Item, Optional[models.User], int]]
        ``(アイテム, 投稿者, クレーム件数)`` のリスト。
    """
    claim_counts = _claim_counts()
    result = await db.execute(
        select(models.Item, models.User, func.coalesce(claim_counts.c.claims_count, 0))
        .outerjoin(models.User, models.User.id == models.Item.posted_by)
        .outerjoin(claim_counts, claim_counts.c.item_id == models.Item.id)
        .order_by(models.Item.created_at.desc(), models.Item.id.desc())
    )
    return [tuple(row) for row in result.all()]

# 特定ユーザーのアイテムをクレーム件数とともに取得する関数
async def get_items_by_owner(db: AsyncSession, owner_id: int) -> List[Tuple[models.Item, int]]:
    claim_counts = _claim_counts()
    result = await db.execute(
        select(models.Item, func.coalesce(claim_counts.c.claims_count, 0))
        .outerjoin(claim_counts, claim_counts.c.item_id == models.Item.id)
        .filter(models.Item.posted_by == owner_id)
        .order_by(models.Item.created_at.desc(), models.Item.id.desc())
    )
    return [tuple(row) for row in result.all()]

# 新しいアイテムを作成する関数
async def create_item(
        db: AsyncSession,
        owner_id: int,
        title: str,
        description: str,
        location: str,
        image_url: Optional[str] = None
        ) -> models.Item:
    """
    新しいアイテムを ``active`` 状態で作成します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    owner_id : int
        投稿者のユーザーID。
    title, description, location : str
        投稿内容（前後の空白は除去済み）。
    image_url : Optional[str], optional
        画像の参照。

    Returns
    -------
    models.Item
        作成された新しいアイテムオブジェクト。
    """
    db_item = models.Item(
        title=title,
        description=description,
        location=location,
        image_url=image_url,
        posted_by=owner_id,
        status=models.ITEM_ACTIVE,
    )
    db.add(db_item)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_item)
    return db_item

# アイテムを関連クレームとともに削除する関数
async def delete_item(db: AsyncSession, db_item: models.Item) -> List[str]:
    """
    アイテムを削除します。

    アイテムに対するクレームを先に削除し、続けてアイテムを削除します。
    両方の削除は1つのトランザクションでコミットされます。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    db_item : models.Item
        削除対象のアイテム。

    Returns
    -------
    List[str]
        削除された行が参照していた画像のリスト。
    """
    try:
        proof_images = await db.execute(
            select(models.Claim.proof_image_url).where(models.Claim.item_id == db_item.id)
        )
        image_urls = [url for url in [db_item.image_url] + list(proof_images.scalars().all()) if url]

        await db.execute(
            delete(models.Claim).where(models.Claim.item_id == db_item.id).execution_options(synchronize_session=False)
        )
        await db.delete(db_item)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return image_urls


# クレームIDでクレームを対象アイテムとともに取得する関数
async def get_claim_with_item(db: AsyncSession, claim_id: int) -> Optional[Tuple[models.Claim, models.Item]]:
    """
    クレームIDでクレームと対象アイテムを取得します。

    Returns
    -------
    Optional[Tuple[models.Claim, models.Item]]
        見つかった場合は ``(クレーム, アイテム)``、存在しない場合はNone。
    """
    result = await db.execute(
        select(models.Claim, models.Item)
        .join(models.Item, models.Item.id == models.Claim.item_id)
        .filter(models.Claim.id == claim_id)
    )
    row = result.first()
    return tuple(row) if row else None

# アイテムと申請者の組でクレームを取得する関数
async def get_claim_by_item_and_claimant(db: AsyncSession, item_id: int, user_id: int) -> Optional[models.Claim]:
    result = await db.execute(
        select(models.Claim).filter(
            models.Claim.item_id == item_id,
            models.Claim.claimed_by == user_id,
        )
    )
    return result.scalars().first()

# 新しいクレームを作成する関数
async def create_claim(
        db: AsyncSession,
        item_id: int,
        user_id: int,
        message: str,
        proof_image_url: Optional[str] = None
        ) -> models.Claim:
    """
    新しいクレームを ``pending`` 状態で作成します。

    ``(item_id, claimed_by)`` の一意制約に違反した場合は ``IntegrityError`` が送出されます。
    """
    db_claim = models.Claim(
        item_id=item_id,
        claimed_by=user_id,
        message=message,
        proof_image_url=proof_image_url,
        status=models.CLAIM_PENDING,
    )
    db.add(db_claim)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_claim)
    return db_claim

# クレームを承認し、アイテムを引き渡し済みにする関数
async def approve_claim(db: AsyncSession, db_claim: models.Claim, db_item: models.Item) -> bool:
    """
    クレームを承認し、対象アイテムを ``claimed`` にします。

    2つの更新は1つのトランザクションでコミットされます。
    アイテムが既に ``active`` でない場合は何も変更せずFalseを返します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    db_claim : models.Claim
        承認するクレーム。
    db_item : models.Item
        クレームの対象アイテム。

    Returns
    -------
    bool
        承認できた場合はTrue。
    """
    try:
        result = await db.execute(
            update(models.Item)
            .where(models.Item.id == db_item.id, models.Item.status == models.ITEM_ACTIVE)
            .values(status=models.ITEM_CLAIMED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        db_claim.status = models.CLAIM_APPROVED
        db.add(db_claim)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_claim)
    await db.refresh(db_item)
    return True

# クレームを却下する関数
async def reject_claim(db: AsyncSession, db_claim: models.Claim) -> models.Claim:
    db_claim.status = models.CLAIM_REJECTED
    db.add(db_claim)
    await db.commit()
    await db.refresh(db_claim)
    return db_claim

# 自分のアイテムに届いたクレームを取得する関数
async def get_claims_for_owner(
        db: AsyncSession,
        owner_id: int
        ) -> List[Tuple[models.Claim, models.Item, Optional[models.User]]]:
    """
    指定したユーザーが所有するアイテムへのクレームを新しい順に取得します。

    Returns
    -------
    List[Tuple[models.Claim, models.Item, Optional[models.User]]]
        ``(クレーム, アイテム, 申請者)`` のリスト。
    """
    result = await db.execute(
        select(models.Claim, models.Item, models.User)
        .join(models.Item, models.Item.id == models.Claim.item_id)
        .outerjoin(models.User, models.User.id == models.Claim.claimed_by)
        .filter(models.Item.posted_by == owner_id)
        .order_by(models.Claim.created_at.desc(), models.Claim.id.desc())
    )
    return [tuple(row) for row in result.all()]
