"""Request bodies for the order routes. Both snake_case and camelCase keys are accepted."""

from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    merchant_id: str = Field(
        default="",
        validation_alias=AliasChoices("merchant_id", "merchantId"),
    )
    # Items are validated by the lifecycle engine so errors name the line
    items: List[Any] = Field(default_factory=list)
    table_number: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("table_number", "tableNumber"),
    )
    pickup_method_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pickup_method_id", "pickupMethodId", "pickupMethod"),
    )
    note: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str = Field(min_length=1)
