"""SQLAlchemy models package: import all models so Base.metadata is populated."""

from app.models.base import ActiveFlagMixin, BaseModel, ModelMixin, TimestampedModel
from app.models.enums import (
    BatchStatus,
    ItemStatus,
    QualityStatus,
)
from app.models.fractional import FractionalToken, ShareTransfer
from app.models.manufacturing import Batch, Item, Product

__all__ = [
    "ActiveFlagMixin",
    "BaseModel",
    "ModelMixin",
    "TimestampedModel",
    "BatchStatus",
    "ItemStatus",
    "QualityStatus",
    "FractionalToken",
    "ShareTransfer",
    "Batch",
    "Item",
    "Product",
]
