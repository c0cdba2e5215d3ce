from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, RootModel, field_validator

from schemas.discount import Discount
from schemas.imports import ActionResultType
from schemas.product import ProductPriceDescriptor

FORM_FIELDS = ("full_name", "email", "phone")


class CheckoutContact(BaseModel):
    """Local validation of the customer fields; the phone is checked separately."""

    full_name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)

    @field_validator("full_name", "phone", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("full_name")
    @classmethod
    def _full_name_has_letters(cls, value: str) -> str:
        if len(value) < 2:
            raise ValueError("Please enter your full name")
        return value


@dataclass
class CheckoutFormState:
    full_name: str = ""
    email: str = ""
    phone: str = ""
    discount_code: str = ""
    errors: dict[str, str] = field(default_factory=dict)

    def edit(self, field_name: str, value: str) -> None:
        if field_name not in (*FORM_FIELDS, "discount_code"):
            raise KeyError(field_name)
        setattr(self, field_name, value)
        self.errors.pop(field_name, None)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class ApplyDiscountAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action_type: Literal["applyDiscount"] = Field(alias="actionType")
    shop_id: str = Field(default="", alias="shopId")
    discount_code: str = Field(default="", alias="discountCode")


class CreateTransactionAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action_type: Literal["createTransaction"] = Field(alias="actionType")
    shop_id: str = Field(alias="shopId", min_length=1)
    product_id: str = Field(alias="productId", min_length=1)
    full_name: str = Field(alias="fullName", min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    currency: str | None = None
    discount_id: str | None = Field(default=None, alias="discountId")


CheckoutAction = Annotated[
    Union[ApplyDiscountAction, CreateTransactionAction],
    Field(discriminator="action_type"),
]


class CheckoutActionIn(RootModel[CheckoutAction]):
    pass


class CheckoutActionResult(BaseModel):
    type: ActionResultType
    success: bool
    message: str
    discount: Discount | None = None
    transaction: dict[str, Any] | None = None
    payment_url: str | None = None


class QuoteIn(BaseModel):
    product: ProductPriceDescriptor
    shop_currency: str | None = None
    country_code: str | None = None
    target_currency: str | None = None
    discount: Discount | None = None


class PhoneValidateIn(BaseModel):
    phone: str
    country_code: str = Field(min_length=2, max_length=2)
