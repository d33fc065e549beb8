"""
Product Registry Contract
Halal product registry whose every state change is a ledger transaction.

Operations validate, submit a transaction and apply state under the
chain lock, so racing purchases of one product have exactly one winner.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from .block import Transaction, TxKind
from .chain import Blockchain
from .errors import (
    AlreadyPurchasedError,
    ContractError,
    IncorrectPaymentError,
    InvalidPriceError,
    LedgerIntegrityError,
    MalformedTransactionError,
    NotCertifiedError,
    ProductAlreadyExistsError,
    ProductNotFoundError,
    SelfPurchaseError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

# Payload fields each transaction kind must carry
REQUIRED_FIELDS = {
    TxKind.REGISTER_CERTIFIER: ("certifier",),
    TxKind.ADD_PRODUCT: ("product_id", "name", "price"),
    TxKind.CERTIFY: ("product_id", "certificate_id"),
    TxKind.REVOKE_CERTIFICATION: ("product_id",),
    TxKind.PURCHASE: ("product_id", "payment"),
}


class ProductStatus(str, Enum):
    LISTED = "listed"
    SOLD = "sold"


@dataclass
class Certificate:
    """Halal certificate attached to a product."""

    certificate_id: str
    certifier: str
    issued_at: datetime
    tx_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certificate_id": self.certificate_id,
            "certifier": self.certifier,
            "issued_at": self.issued_at.isoformat(),
            "tx_id": self.tx_id,
        }


@dataclass
class ProductRecord:
    """Contract state for one product."""

    product_id: str
    name: str
    seller: str
    price: Decimal
    ingredients: List[str] = field(default_factory=list)
    status: ProductStatus = ProductStatus.LISTED
    buyer: Optional[str] = None
    certificate: Optional[Certificate] = None
    listed_tx: Optional[str] = None
    purchase_tx: Optional[str] = None

    @property
    def certified(self) -> bool:
        return self.certificate is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "seller": self.seller,
            "price": str(self.price),
            "ingredients": list(self.ingredients),
            "status": self.status.value,
            "buyer": self.buyer,
            "certified": self.certified,
            "certificate": self.certificate.to_dict() if self.certificate else None,
            "listed_tx": self.listed_tx,
            "purchase_tx": self.purchase_tx,
        }


def parse_amount(value: Any) -> Decimal:
    """
    Convert a price or payment to Decimal.

    Raises:
        InvalidPriceError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidPriceError(value)
    if not amount.is_finite():
        raise InvalidPriceError(value)
    return amount


class ProductRegistry:
    """
    Smart contract over a Blockchain.

    State can always be rebuilt with `ProductRegistry.replay(chain, admin)`.
    """

    def __init__(self, chain: Blockchain, admin: str, require_certification: bool = True):
        """
        Initialize registry.

        Args:
            chain: Ledger that records every state change
            admin: Account allowed to register certifiers
            require_certification: Whether purchases need a halal certificate
        """
        self.chain = chain
        self.admin = admin
        self.require_certification = require_certification
        self.lock = chain.lock

        self._products: Dict[str, ProductRecord] = {}
        self._certifiers: Set[str] = set()
        self._balances: Dict[str, Decimal] = {}
        self._product_count = 0

    @classmethod
    def replay(
        cls,
        chain: Blockchain,
        admin: str,
        require_certification: bool = True,
    ) -> "ProductRegistry":
        """
        Rebuild contract state from every transaction on the chain.

        Raises:
            LedgerIntegrityError: If a recorded transaction fails validation
        """
        registry = cls(chain, admin, require_certification=require_certification)
        with registry.lock:
            for tx in chain.all_transactions():
                try:
                    registry._check(tx)
                except ContractError as e:
                    raise LedgerIntegrityError(
                        f"Transaction {tx.tx_id} ({tx.kind.value}) failed replay: {e.message}",
                        block_index=chain.find_transaction(tx.tx_id),
                    )
                registry._mutate(tx)

        logger.info(
            f"Replayed registry: {registry.product_count} products, "
            f"{len(registry._certifiers)} certifiers"
        )
        return registry

    # === Queries ===

    @property
    def product_count(self) -> int:
        """Number of products ever added."""
        with self.lock:
            return self._product_count

    @property
    def certifiers(self) -> List[str]:
        with self.lock:
            return sorted(self._certifiers)

    def is_certifier(self, account: str) -> bool:
        with self.lock:
            return account in self._certifiers

    def get_product(self, product_id: str) -> ProductRecord:
        """
        Raises:
            ProductNotFoundError: If no such product exists
        """
        with self.lock:
            product = self._products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            return product

    def has_product(self, product_id: str) -> bool:
        with self.lock:
            return product_id in self._products

    def list_products(
        self,
        status: Optional[ProductStatus] = None,
        certified: Optional[bool] = None,
        seller: Optional[str] = None,
    ) -> List[ProductRecord]:
        with self.lock:
            products = list(self._products.values())

        if status is not None:
            products = [p for p in products if p.status == ProductStatus(status)]
        if certified is not None:
            products = [p for p in products if p.certified == certified]
        if seller is not None:
            products = [p for p in products if p.seller == seller]
        return products

    def balance_of(self, account: str) -> Decimal:
        with self.lock:
            return self._balances.get(account, Decimal("0"))

    def balances(self) -> Dict[str, Decimal]:
        with self.lock:
            return dict(self._balances)

    # === Operations ===

    def register_certifier(self, sender: str, certifier: str) -> Optional[Transaction]:
        """
        Register a halal certifier.

        Returns:
            Transaction, or None if the certifier was already registered

        Raises:
            UnauthorizedError: If sender is not the admin
        """
        with self.lock:
            if sender == self.admin and certifier in self._certifiers:
                return None
            return self._execute(
                Transaction(
                    kind=TxKind.REGISTER_CERTIFIER, sender=sender, payload={"certifier": certifier}
                )
            )

    def add_product(
        self,
        seller: str,
        product_id: str,
        name: str,
        price: Any,
        ingredients: Iterable[str] = (),
    ) -> Transaction:
        """
        List a new product.

        Raises:
            InvalidPriceError: If price is not greater than zero
            ProductAlreadyExistsError: If product_id is taken
        """
        amount = parse_amount(price)
        return self._execute(
            Transaction(
                kind=TxKind.ADD_PRODUCT,
                sender=seller,
                payload={
                    "product_id": product_id,
                    "name": name,
                    "price": str(amount),
                    "ingredients": [str(i) for i in ingredients],
                },
            )
        )

    def certify(self, certifier: str, product_id: str, certificate_id: str) -> Transaction:
        """
        Attach a halal certificate, replacing any earlier one.

        Raises:
            UnauthorizedError: If certifier is not registered
            ProductNotFoundError: If no such product exists
        """
        return self._execute(
            Transaction(
                kind=TxKind.CERTIFY,
                sender=certifier,
                payload={"product_id": product_id, "certificate_id": certificate_id},
            )
        )

    def revoke_certification(self, certifier: str, product_id: str) -> Transaction:
        """
        Remove a product's certificate.

        Raises:
            UnauthorizedError: If sender is neither the issuing certifier nor the admin
            NotCertifiedError: If the product has no certificate
        """
        return self._execute(
            Transaction(
                kind=TxKind.REVOKE_CERTIFICATION,
                sender=certifier,
                payload={"product_id": product_id},
            )
        )

    def purchase(self, buyer: str, product_id: str, payment: Any) -> Transaction:
        """
        Purchase a product.

        Raises:
            ProductNotFoundError: If no such product exists
            AlreadyPurchasedError: If the product is sold
            SelfPurchaseError: If buyer is the seller
            NotCertifiedError: If certification is required and missing
            IncorrectPaymentError: If payment does not equal price
        """
        amount = parse_amount(payment)
        return self._execute(
            Transaction(
                kind=TxKind.PURCHASE,
                sender=buyer,
                payload={"product_id": product_id, "payment": str(amount)},
            )
        )

    def apply(self, tx: Transaction) -> Transaction:
        """
        Validate and record a pre-built transaction (e.g. handed to a worker).

        Raises:
            ContractError: If the transaction is not valid against current state
        """
        return self._execute(tx)

    # === Internals ===

    def _execute(self, tx: Transaction) -> Transaction:
        with self.lock:
            self._check(tx)
            self.chain.submit(tx)
            self._mutate(tx)

        logger.info(
            f"{tx.kind.value} by {tx.sender}: {tx.payload.get('product_id', tx.payload)}",
            extra={"tx_id": tx.tx_id},
        )
        return tx

    def _check(self, tx: Transaction) -> None:
        """Validate a transaction against current state without changing it."""
        payload = tx.payload
        self._check_payload(tx)

        if tx.kind == TxKind.REGISTER_CERTIFIER:
            if tx.sender != self.admin:
                raise UnauthorizedError(tx.sender, "register certifiers")
            return

        product_id = payload.get("product_id")

        if tx.kind == TxKind.ADD_PRODUCT:
            if parse_amount(payload.get("price")) <= 0:
                raise InvalidPriceError(payload.get("price"))
            if product_id in self._products:
                raise ProductAlreadyExistsError(product_id)
            return

        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        if tx.kind == TxKind.CERTIFY:
            if tx.sender not in self._certifiers:
                raise UnauthorizedError(tx.sender, "certify products")

        elif tx.kind == TxKind.REVOKE_CERTIFICATION:
            if product.certificate is None:
                raise NotCertifiedError(product_id)
            if tx.sender not in (product.certificate.certifier, self.admin):
                raise UnauthorizedError(tx.sender, "revoke this certificate")

        elif tx.kind == TxKind.PURCHASE:
            if product.status == ProductStatus.SOLD:
                raise AlreadyPurchasedError(product_id)
            if tx.sender == product.seller:
                raise SelfPurchaseError(product_id, tx.sender)
            if self.require_certification and not product.certified:
                raise NotCertifiedError(product_id)
            payment = parse_amount(payload.get("payment"))
            if payment != product.price:
                raise IncorrectPaymentError(product_id, product.price, payment)

    def _check_payload(self, tx: Transaction) -> None:
        payload = tx.payload
        invalid = [
            key
            for key in REQUIRED_FIELDS[tx.kind]
            if payload.get(key) is None or payload.get(key) == ""
        ]
        if not isinstance(payload.get("ingredients", []), list):
            invalid.append("ingredients")
        if invalid:
            raise MalformedTransactionError(tx.tx_id, tx.kind.value, invalid)

    def _mutate(self, tx: Transaction) -> None:
        """Apply a validated transaction."""
        payload = tx.payload

        if tx.kind == TxKind.REGISTER_CERTIFIER:
            self._certifiers.add(payload["certifier"])

        elif tx.kind == TxKind.ADD_PRODUCT:
            self._products[payload["product_id"]] = ProductRecord(
                product_id=payload["product_id"],
                name=payload["name"],
                seller=tx.sender,
                price=parse_amount(payload["price"]),
                ingredients=list(payload.get("ingredients", [])),
                listed_tx=tx.tx_id,
            )
            self._product_count += 1

        elif tx.kind == TxKind.CERTIFY:
            self._products[payload["product_id"]].certificate = Certificate(
                certificate_id=payload["certificate_id"],
                certifier=tx.sender,
                issued_at=tx.timestamp,
                tx_id=tx.tx_id,
            )

        elif tx.kind == TxKind.REVOKE_CERTIFICATION:
            self._products[payload["product_id"]].certificate = None

        elif tx.kind == TxKind.PURCHASE:
            product = self._products[payload["product_id"]]
            product.status = ProductStatus.SOLD
            product.buyer = tx.sender
            product.purchase_tx = tx.tx_id
            self._balances[product.seller] = (
                self._balances.get(product.seller, Decimal("0")) + product.price
            )
