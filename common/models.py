"""
Pydantic v2 models for orders and the bodies of the order API.

Order is both the registry record and the create body, so it forbids extra
fields. OrderUpdateRequest ignores extras instead: clients may send a full
order back on update, but only item and price are ever applied.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Order(BaseModel):
    """An order record. id is the registry key, message_type picks the routing key."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    item: str
    price: int
    message_type: str = Field(..., min_length=1)


class OrderUpdateRequest(BaseModel):
    """Partial update: only the fields present in the body are changed."""

    model_config = ConfigDict(extra="ignore")

    item: str | None = None
    price: int | None = None


class OrderAccepted(BaseModel):
    """Response for a registered and published order."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Order received and queued"
    order_id: str = Field(..., alias="orderID")
    message_type: str = Field(..., alias="messageType")
