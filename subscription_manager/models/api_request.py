"""API request models for the subscription and user endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class CreateSubscriptionRequest(BaseModel):
    """Request to create a subscription for a processor customer."""

    customer_id: str = Field(..., min_length=1, alias="customerId", description="Processor customer id")
    price_id: str = Field(..., min_length=1, alias="priceId", description="Processor price id")
    payment_method_id: str = Field(
        ..., min_length=1, alias="paymentMethodId", description="Processor payment method id"
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "customerId": "cus_NffrFeUfNV2Hib",
                "priceId": "price_basic_monthly",
                "paymentMethodId": "pm_card_visa",
            }
        }


class ChangePriceRequest(BaseModel):
    """Request body for upgrade and downgrade."""

    new_price_id: str = Field(..., min_length=1, alias="newPriceId", description="Target processor price id")

    class Config:
        populate_by_name = True
        json_schema_extra = {"example": {"newPriceId": "price_pro_monthly"}}


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, description="Unique email address")
    name: Optional[str] = Field(None, description="Display name used in emails")


class UpdateUserRequest(BaseModel):
    email: Optional[str] = Field(None, min_length=3)
    name: Optional[str] = None
