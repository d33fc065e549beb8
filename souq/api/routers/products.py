"""
Product Endpoints
Product registry contract operations.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...ledger import ProductRecord, ProductRegistry, ProductStatus, Transaction
from ..dependencies import get_registry, get_request_id
from ..models.products import (
    AddProductRequest,
    CertifyRequest,
    ProductCountResponse,
    ProductListResponse,
    ProductResponse,
    PurchaseRequest,
    TransactionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/products", tags=["products"])


def to_product_response(record: ProductRecord) -> ProductResponse:
    return ProductResponse(**record.to_dict())


def to_transaction_response(tx: Transaction, registry: ProductRegistry) -> TransactionResponse:
    data = tx.model_dump(mode="json")
    return TransactionResponse(
        tx_id=data["tx_id"],
        kind=data["kind"],
        sender=data["sender"],
        payload=data["payload"],
        timestamp=data["timestamp"],
        confirmed_in_block=registry.chain.find_transaction(tx.tx_id),
    )


@router.get("", response_model=ProductListResponse)
async def list_products(
    product_status: Optional[ProductStatus] = Query(None, alias="status"),
    certified: Optional[bool] = Query(None),
    seller: Optional[str] = Query(None),
    registry: ProductRegistry = Depends(get_registry),
) -> ProductListResponse:
    """
    List products.

    Args:
        product_status: Filter by listed/sold
        certified: Filter by halal certification
        seller: Filter by seller account
    """
    products = registry.list_products(status=product_status, certified=certified, seller=seller)
    return ProductListResponse(
        products=[to_product_response(p) for p in products],
        total=len(products),
    )


@router.get("/count", response_model=ProductCountResponse)
async def product_count(registry: ProductRegistry = Depends(get_registry)) -> ProductCountResponse:
    """Number of products ever added."""
    return ProductCountResponse(count=registry.product_count)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str, registry: ProductRegistry = Depends(get_registry)
) -> ProductResponse:
    return to_product_response(registry.get_product(product_id))


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def add_product(
    request: AddProductRequest,
    registry: ProductRegistry = Depends(get_registry),
    request_id: str = Depends(get_request_id),
) -> TransactionResponse:
    """
    List a new product on the registry.

    Raises:
        409 if the product ID is taken
    """
    logger.info(
        f"Add product {request.product_id} by {request.seller}",
        extra={"request_id": request_id},
    )
    tx = registry.add_product(
        request.seller, request.product_id, request.name, request.price, request.ingredients
    )
    return to_transaction_response(tx, registry)


@router.post("/{product_id}/purchase", response_model=TransactionResponse)
async def purchase_product(
    product_id: str,
    request: PurchaseRequest,
    registry: ProductRegistry = Depends(get_registry),
    request_id: str = Depends(get_request_id),
) -> TransactionResponse:
    """
    Purchase a product. Payment must equal the listed price.

    Raises:
        404 if the product does not exist
        409 if it is already sold
        400 on incorrect payment or missing certification
    """
    logger.info(
        f"Purchase {product_id} by {request.buyer} ({request.payment})",
        extra={"request_id": request_id},
    )
    tx = registry.purchase(request.buyer, product_id, request.payment)
    return to_transaction_response(tx, registry)


@router.post("/{product_id}/certify", response_model=TransactionResponse)
async def certify_product(
    product_id: str,
    request: CertifyRequest,
    registry: ProductRegistry = Depends(get_registry),
) -> TransactionResponse:
    """Attach a halal certificate (registered certifiers only)."""
    tx = registry.certify(request.certifier, product_id, request.certificate_id)
    return to_transaction_response(tx, registry)


@router.delete("/{product_id}/certification", response_model=TransactionResponse)
async def revoke_certification(
    product_id: str,
    certifier: str = Query(..., min_length=1),
    registry: ProductRegistry = Depends(get_registry),
) -> TransactionResponse:
    """Revoke a certificate (issuing certifier or admin only)."""
    tx = registry.revoke_certification(certifier, product_id)
    return to_transaction_response(tx, registry)
