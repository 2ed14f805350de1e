from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class ProductUnit(str, Enum):
    LITRE = "litre"
    KG = "kg"
    PIECE = "piece"
    PACKET = "packet"


class ProductCategory(str, Enum):
    MILK = "milk"
    CURD = "curd"
    GHEE = "ghee"
    BUTTERMILK = "buttermilk"
    PANEER = "paneer"
    OTHER = "other"


class Product(BaseModel):
    id: int | None = None
    uuid: str = ""
    name: str
    category: ProductCategory = ProductCategory.MILK
    unit: ProductUnit = ProductUnit.LITRE
    price_per_unit: int  # paise
    is_available: bool = True
    created_at: datetime | None = None
