from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from typing import Any, List, Optional

NOTIFIABLE_STATUSES = ("Shipped", "Delivered", "Cancelled")


def order_id_to_str(v):
    # order systems send numeric ids as JSON numbers
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class OrderEvent(BaseModel):
    """
    Read-only view of an order record as delivered by the order system.
    Accepts both the app's field names and the alternative keys used by
    older clients (`total`, `customerEmail`).
    """
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "user_id"))
    customer_email: Optional[str] = Field(
        None, validation_alias=AliasChoices("userEmail", "customerEmail", "customer_email")
    )
    total_price: float = Field(0, validation_alias=AliasChoices("totalPrice", "total", "total_price"))
    items: List[Any] = Field(default_factory=list)
    declared_item_count: Optional[int] = Field(None, validation_alias=AliasChoices("itemCount", "item_count"))
    order_status: str = Field("Pending", validation_alias=AliasChoices("orderStatus", "order_status"))

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("total_price", mode="before")
    def validate_total_price(cls, v):
        return 0 if v in (None, "") else v

    @field_validator("items", mode="before")
    def validate_items(cls, v):
        return v or []

    @field_validator("order_status", mode="before")
    def validate_order_status(cls, v):
        return v or "Pending"

    @property
    def item_count(self) -> int:
        if self.declared_item_count is not None:
            return self.declared_item_count
        return len(self.items)


class OrderUpdateEvent(BaseModel):
    before: OrderEvent
    after: OrderEvent


class OrderStatusUpdateRequest(BaseModel):
    orderId: str
    userId: Optional[str] = None
    newStatus: Optional[str] = None
    oldStatus: Optional[str] = None

    @field_validator("orderId", mode="before")
    def validate_order_id(cls, v):
        return order_id_to_str(v)
