from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class Product(SQLModel, table=True):
    """Catalog item shown in the Mini-App. Prices are in major units (rubles)."""

    id: int | None = Field(default=None, primary_key=True)
    name: str
    price: float
    category: str = Field(index=True)
    description: str = ""
    images: list[str] = Field(default_factory=list, sa_column=Column(JSON))  # relative paths, first is the cover
    emoji: str = "📦"
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    sku: str = ""
    in_stock: bool = Field(default=True, index=True)
    rating: float | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
