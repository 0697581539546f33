from pydantic import BaseModel, ConfigDict, Field


class ProductIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    price: float = Field(ge=0)
    category: str
    description: str = ""
    images: list[str] = Field(default_factory=list)
    emoji: str = "📦"
    tags: list[str] = Field(default_factory=list)
    sku: str = ""
    in_stock: bool = Field(default=True, alias="inStock")
    rating: float | None = None
