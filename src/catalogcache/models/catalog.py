from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_FEATURED = 6


class Category(StrEnum):
    """Categories the catalog is known to use.

    Not exhaustive. ``Product.category`` accepts any string, since records
    at the origin carry values outside this list.
    """

    GROCERY = "Mercearia"
    OFFICE = "Escritorio"
    OFFICE_ACCENTED = "Escritório"
    SCHOOL = "Escolar"
    WRITING = "Escrita"
    PAPER = "Papel"
    TOYS = "Brinquedos"
    FUN = "Diversão"
    ELECTRONICS = "Eletrônicos"
    OTHER = "Outros"


class ProductDraft(BaseModel):
    """A product as submitted by the back office, before an id is assigned."""

    name: str
    description: str = ""
    price: float = Field(ge=0)
    image: str = ""  # URL
    category: str = Category.OTHER.value
    featured: bool = False
    order: int = 0  # Display rank; meaningful only among featured products

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v


class Product(ProductDraft):
    """Catalog product as stored at the origin."""

    id: str

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v:
            raise ValueError("id must not be empty")
        return v


class WeeklyPdf(BaseModel):
    """Weekly PDF listing. Immutable once uploaded; only deletion is allowed."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    url: str
    upload_date: datetime = Field(alias="uploadDate")
    week: str  # "day/month" of the upload, e.g. "14/3"
    year: int
    file_path: str | None = None  # Object-storage key


class ProductImage(BaseModel):
    """Metadata for an image held in object storage."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    pathname: str
    size: int = Field(ge=0)
    uploaded_at: datetime = Field(alias="uploadedAt")
