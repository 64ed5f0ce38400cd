from typing import Dict, Optional

from fastapi import HTTPException, status


class LostFoundError(HTTPException):
    """
    APIが返すすべてのエラーの基底クラス。

    ``kind`` はクライアントが分岐に使う安定した識別子で、
    レスポンスボディに ``{"detail": ..., "kind": ...}`` として含まれます。
    """
    kind: str = "Error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Request failed"

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(LostFoundError):
    kind = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Unauthenticated(LostFoundError):
    kind = "Unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(LostFoundError):
    kind = "InvalidCredentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid email or password"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(LostFoundError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"


class Protected(LostFoundError):
    kind = "Protected"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "The main admin account cannot be modified"


class NotFound(LostFoundError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(LostFoundError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class ItemUnavailable(LostFoundError):
    kind = "ItemUnavailable"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This item is no longer available for claims"


class SelfClaimForbidden(LostFoundError):
    kind = "SelfClaimForbidden"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "You cannot claim your own item"


class DuplicateClaim(LostFoundError):
    kind = "DuplicateClaim"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already submitted a claim for this item"


class DependencyFailure(LostFoundError):
    kind = "DependencyFailure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The service is temporarily unavailable. Please try again."
