"""
Product Models
Pydantic models for product registry endpoints.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CertificateInfo(BaseModel):
    certificate_id: str
    certifier: str
    issued_at: str
    tx_id: str


class ProductResponse(BaseModel):
    """Product as recorded by the registry contract."""

    product_id: str = Field(..., description="Product ID")
    name: str = Field(..., description="Product name")
    seller: str = Field(..., description="Seller account")
    price: Decimal = Field(..., description="Exact price required for purchase")
    ingredients: List[str] = Field(default_factory=list)
    status: str = Field(..., description="listed or sold")
    buyer: Optional[str] = Field(None, description="Buyer account once sold")
    certified: bool = Field(..., description="Whether a halal certificate is attached")
    certificate: Optional[CertificateInfo] = None
    listed_tx: Optional[str] = None
    purchase_tx: Optional[str] = None


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    total: int = Field(..., description="Number of products returned")


class ProductCountResponse(BaseModel):
    count: int = Field(..., description="Number of products ever added")


class AddProductRequest(BaseModel):
    """List a new product."""

    seller: str = Field(..., min_length=1, description="Seller account")
    product_id: str = Field(..., min_length=1, max_length=128, description="Unique product ID")
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    price: Decimal = Field(..., gt=0, description="Price (must be positive)")
    ingredients: List[str] = Field(default_factory=list, description="Ingredient list")

    class Config:
        json_schema_extra = {
            "example": {
                "seller": "seller-amina",
                "product_id": "amina-olive-oil",
                "name": "Olive Oil 1L",
                "price": "9.99",
                "ingredients": ["olives"],
            }
        }


class PurchaseRequest(BaseModel):
    buyer: str = Field(..., min_length=1, description="Buyer account")
    payment: Decimal = Field(..., description="Payment; must equal the product price")


class CertifyRequest(BaseModel):
    certifier: str = Field(..., min_length=1, description="Registered certifier account")
    certificate_id: str = Field(..., min_length=1, max_length=128, description="Certificate ID")


class TransactionResponse(BaseModel):
    """Transaction recorded for a contract operation."""

    tx_id: str
    kind: str
    sender: str
    payload: dict
    timestamp: str
    confirmed_in_block: Optional[int] = Field(
        None, description="Block index, or null while pending"
    )
