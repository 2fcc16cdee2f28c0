"""
Base Schema Classes for Pydantic Models

RULE: Response schemas read from ORM rows (`from_attributes=True`) and MUST
inherit from BaseResponseSchema. Money columns are Numeric in the database
and are declared as float on responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for schemas built from coupon, gift card and loyalty rows.

    Usage:
        class CouponResponse(BaseResponseSchema):
            id: UUID
            code: str
            discount_value: Optional[float] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Admin input. Unknown fields are ignored and strings are trimmed."""
    model_config = ConfigDict(
        extra='ignore',
        str_strip_whitespace=True,
    )


class BaseUpdateSchema(BaseCreateSchema):
    """Partial update: every field is optional and only the ones sent are applied."""


class BusinessFailureResponse(BaseModel):
    """Body of a 400 returned when a pricing rule rejects the request."""
    success: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    instrument: Optional[str] = None
