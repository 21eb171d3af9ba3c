import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.orders_service.models import DiscountType

# ============================================================================
# VERIFICATION
# ============================================================================


class CouponVerifyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    user_id: Optional[str] = Field(default=None, alias="userId")
    cart_total: Decimal = Field(ge=0, alias="cartTotal")

    model_config = ConfigDict(populate_by_name=True)


class CouponSummary(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal


class CouponVerifyResponse(BaseModel):
    valid: bool
    coupon: Optional[CouponSummary] = None
    message: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# ADMIN
# ============================================================================


class CouponBase(BaseModel):
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    min_purchase: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount: Optional[Decimal] = Field(default=None, gt=0)
    usage_limit: int = Field(ge=1)
    for_plus_only: bool = False
    for_new_users: bool = False
    expires_at: Optional[datetime] = None
    is_active: bool = True


class CouponCreate(CouponBase):
    code: str = Field(min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()


class CouponUpdate(BaseModel):
    description: Optional[str] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    min_purchase: Optional[Decimal] = Field(default=None, ge=0)
    max_discount: Optional[Decimal] = Field(default=None, gt=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    for_plus_only: Optional[bool] = None
    for_new_users: Optional[bool] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class CouponResponse(CouponBase):
    id: uuid.UUID
    code: str
    used_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
