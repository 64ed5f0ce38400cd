import logging
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from typing import List, Optional, Tuple
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from .. import schemas, crud, models, errors, storage
from ..dependencies import get_db
from ..auth import get_current_user, require_user_record
from .items import poster_of, required_text

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/claims",
    tags=["claims"],
)


async def get_claim_for_decision(
        db: AsyncSession,
        claim_id: int,
        current_user: schemas.Identity
        ) -> Tuple[models.Claim, models.Item]:
    """
    承認・却下の対象となるクレームを取得し、呼び出し元の権限を確認します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    claim_id : int
        対象クレームのID。
    current_user : schemas.Identity
        呼び出し元。

    Returns
    -------
    Tuple[models.Claim, models.Item]
        クレームと対象アイテム。

    Raises
    ------
    errors.NotFound
        クレームが存在しない場合。
    errors.Forbidden
        呼び出し元がアイテムの所有者でも管理者でもない場合。
    """
    row = await crud.get_claim_with_item(db, claim_id=claim_id)
    if row is None:
        raise errors.NotFound("Claim not found")
    db_claim, db_item = row
    is_owner = current_user.id is not None and db_item.posted_by == current_user.id
    if not is_owner and not current_user.is_admin:
        logger.warning(f"ユーザー {current_user.id} によるクレーム {claim_id} の操作を拒否しました。")
        raise errors.Forbidden("You can only manage claims for your own items")
    return db_claim, db_item


@router.post("/", response_model=schemas.Claim, status_code=status.HTTP_201_CREATED)
async def submit_claim(
    item_id: Optional[int] = Form(None),
    message: Optional[str] = Form(None),
    proof_image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_storage: Optional[storage.BlobStorage] = Depends(storage.get_blob_storage),
    current_user: schemas.Identity = Depends(get_current_user)
) -> schemas.Claim:
    """
    アイテムに対するクレームを提出します。

    入力検証の後、アイテムの存在、アイテムが ``active`` であること、
    自分のアイテムでないこと、未提出であることをこの順に確認します。
    """
    if item_id is None:
        raise errors.ValidationError("item_id is required")
    message = required_text(message, "message")
    user_id = require_user_record(current_user)

    db_item = await crud.get_item(db, item_id=item_id)
    if db_item is None:
        raise errors.NotFound("Item not found")
    if db_item.status != models.ITEM_ACTIVE:
        raise errors.ItemUnavailable()
    if db_item.posted_by == user_id:
        raise errors.SelfClaimForbidden()
    if await crud.get_claim_by_item_and_claimant(db, item_id=item_id, user_id=user_id):
        raise errors.DuplicateClaim()

    proof_image_url = await storage.upload_image(blob_storage, proof_image, "claim-proofs", "Proof")
    try:
        db_claim = await crud.create_claim(
            db,
            item_id=item_id,
            user_id=user_id,
            message=message,
            proof_image_url=proof_image_url,
        )
    except IntegrityError:
        # 同時に提出された同一クレームは一意制約で弾かれる
        logger.warning(f"ユーザー {user_id} のアイテム {item_id} への重複クレームを拒否しました。")
        await storage.delete_image(blob_storage, proof_image_url)
        raise errors.DuplicateClaim()
    except SQLAlchemyError:
        await storage.delete_image(blob_storage, proof_image_url)
        raise
    logger.info(f"クレーム {db_claim.id} を作成しました（アイテム: {item_id}、申請者: {user_id}）。")
    return db_claim


@router.get("/my-items", response_model=List[schemas.ClaimDetail])
async def read_claims_for_my_items(
    db: AsyncSession = Depends(get_db),
    current_user: schemas.Identity = Depends(get_current_user)
) -> List[schemas.ClaimDetail]:
    if current_user.id is None:
        return []
    rows = await crud.get_claims_for_owner(db, owner_id=current_user.id)
    return [
        schemas.ClaimDetail(
            **schemas.Claim.model_validate(db_claim).model_dump(),
            item=schemas.ClaimItem(id=db_item.id, title=db_item.title, image_url=db_item.image_url),
            claimant=poster_of(claimant, include_email=True),
        )
        for db_claim, db_item, claimant in rows
    ]


@router.put("/{claim_id}/approve", response_model=schemas.Message)
async def approve_claim(
    claim_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.Identity = Depends(get_current_user)
) -> schemas.Message:
    """
    クレームを承認し、アイテムを ``claimed`` にします（アイテムの所有者または管理者）。

    承認済みのクレームを再度承認した場合は何も変更せずに成功します。
    却下済みのクレームは承認できません。
    """
    db_claim, db_item = await get_claim_for_decision(db, claim_id, current_user)
    if db_claim.status == models.CLAIM_APPROVED:
        return schemas.Message(detail="Claim already approved")
    if db_claim.status == models.CLAIM_REJECTED:
        raise errors.Conflict("This claim has already been rejected")
    if db_item.status != models.ITEM_ACTIVE:
        raise errors.ItemUnavailable("This item has already been claimed")

    item_id = db_item.id
    try:
        approved = await crud.approve_claim(db, db_claim, db_item)
    except SQLAlchemyError as e:
        logger.error(
            f"クレーム {claim_id} の承認とアイテム {item_id} の更新に失敗したため、両方をロールバックしました: {e}"
        )
        raise errors.DependencyFailure("Failed to approve claim")
    if not approved:
        raise errors.ItemUnavailable("This item has already been claimed")

    logger.info(f"クレーム {claim_id} を承認し、アイテム {item_id} を claimed にしました。")
    return schemas.Message(detail="Claim approved successfully")


@router.put("/{claim_id}/reject", response_model=schemas.Message)
async def reject_claim(
    claim_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.Identity = Depends(get_current_user)
) -> schemas.Message:
    """
    クレームを却下します（アイテムの所有者または管理者）。アイテムと他のクレームには影響しません。
    """
    db_claim, _ = await get_claim_for_decision(db, claim_id, current_user)
    if db_claim.status == models.CLAIM_REJECTED:
        return schemas.Message(detail="Claim already rejected")
    if db_claim.status == models.CLAIM_APPROVED:
        raise errors.Conflict("This claim has already been approved")

    await crud.reject_claim(db, db_claim)
    logger.info(f"クレーム {claim_id} を却下しました。")
    return schemas.Message(detail="Claim rejected successfully")
