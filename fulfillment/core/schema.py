from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, conint, constr

DEFAULT_PRICE_THRESHOLD = Decimal("1000000.0")


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_name: constr(min_length=1)
    quantity: conint(gt=0)


class OrderRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = ""
    items: tuple[OrderItem, ...] = Field(default_factory=tuple)
    # A negative threshold means "no upper limit".
    price_threshold: Decimal = DEFAULT_PRICE_THRESHOLD

    @property
    def unlimited(self) -> bool:
        return self.price_threshold < 0


class MatchRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_name: str
    category_name: str
    product_name: str
    quantity: int
    total_price: Decimal
    worker_id: str
