"""Request identity.

Tokens are verified by the gateway in front of this service; it forwards the caller
as `X-User-Id`, `X-User-Type` and, for company accounts, `X-Company-Id`.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status
from packages.shared.schemas.order_v1 import UserTypeV1
from services.storefront.app.services.order_base import OrderAccessDeniedError, OrderRecord


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: str
    user_type: UserTypeV1
    company_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.user_type is UserTypeV1.ADMIN

    def owns_company(self, company_id: str) -> bool:
        return self.user_type is UserTypeV1.COMPANY and self.company_id == company_id


def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_type: str | None = Header(default=None),
    x_company_id: str | None = Header(default=None),
) -> Principal:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")

    try:
        user_type = UserTypeV1((x_user_type or UserTypeV1.USER.value).strip().lower())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user type") from e

    if user_type is UserTypeV1.COMPANY and not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Company account without company id"
        )

    return Principal(user_id=x_user_id, user_type=user_type, company_id=x_company_id or None)


def ensure_can_view(principal: Principal, order: OrderRecord) -> None:
    if order.buyer_id == principal.user_id or principal.is_admin:
        return
    if principal.owns_company(order.company_id):
        return
    raise OrderAccessDeniedError("view")


def ensure_can_manage(principal: Principal, order: OrderRecord, action: str) -> None:
    if principal.is_admin or principal.owns_company(order.company_id):
        return
    raise OrderAccessDeniedError(action)
