# haggle/schemas/bargaining/bargaining_schemas.py

from decimal import Decimal
from typing import Optional, List, Dict, Annotated
from pydantic import BaseModel, ConfigDict, Field, field_validator

from haggle.models import BargainingBehavior, MinPriceType

# Fits the DECIMAL(10, 2) price columns.
Money = Annotated[Decimal, Field(max_digits=10, decimal_places=2)]

# ==============================================================================
# Quota
# ==============================================================================

class BargainingLimits(BaseModel):
    max_products: int = Field(..., description="0 means unlimited")
    currently_enabled: int
    plan_slug: str
    plan_name: str

    @property
    def is_unlimited(self) -> bool:
        return self.max_products == 0

    @property
    def remaining(self) -> Optional[int]:
        if self.is_unlimited:
            return None
        return max(self.max_products - self.currently_enabled, 0)

# ==============================================================================
# Settings
# ==============================================================================

class MinPriceSpec(BaseModel):
    type: MinPriceType = MinPriceType.PERCENTAGE
    value: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

class BargainingSettingRead(BaseModel):
    product_id: str
    variant_id: str
    enabled: bool
    min_price: Decimal
    original_price: Decimal
    behavior: BargainingBehavior

    model_config = ConfigDict(from_attributes=True)

class EnableBargainingRequest(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_id: str = Field(..., min_length=1, max_length=64)
    min_price: MinPriceSpec
    behavior: BargainingBehavior = BargainingBehavior.NORMAL
    original_price: Money
    inventory_quantity: int

class DisableBargainingRequest(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_id: Optional[str] = Field(None, min_length=1, max_length=64, description="Omit to disable every variant of the product")

class BulkSelection(BaseModel):
    """
    One product in a bulk update. Per-variant price and stock come from the
    product source at the time of the request.
    """
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_ids: List[str] = Field(..., min_length=1)
    enabled: bool
    min_price: MinPriceSpec
    behavior: BargainingBehavior = BargainingBehavior.NORMAL
    original_prices: Dict[str, Money] = Field(default_factory=dict)
    inventory_quantities: Dict[str, int] = Field(default_factory=dict)

    @field_validator("variant_ids")
    @classmethod
    def dedupe_variants(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

class BulkUpdateRequest(BaseModel):
    selections: List[BulkSelection] = Field(..., min_length=1)

class SkippedVariant(BaseModel):
    product_id: str
    variant_id: str
    reason: str

class BulkUpdateResult(BaseModel):
    updated: List[BargainingSettingRead] = Field(default_factory=list)
    skipped: List[SkippedVariant] = Field(default_factory=list)
    limits: BargainingLimits

class DisableResult(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    disabled: int
    limits: BargainingLimits

class EnableResult(BaseModel):
    setting: BargainingSettingRead
    limits: BargainingLimits
