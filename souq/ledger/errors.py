"""
Ledger Errors
Exceptions raised by the chain and the product registry contract.
"""

from typing import Any, Dict, Optional


class LedgerIntegrityError(Exception):
    """Exception raised when the chain fails verification or replay."""

    def __init__(self, message: str, block_index: Optional[int] = None):
        self.message = message
        self.block_index = block_index
        super().__init__(self.message)


class ContractError(Exception):
    """
    Base exception for contract precondition failures.

    `code` is a stable identifier for API clients and agents.
    """

    code = "contract_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ProductNotFoundError(ContractError):
    code = "product_not_found"

    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}", {"product_id": product_id})


class ProductAlreadyExistsError(ContractError):
    code = "product_exists"

    def __init__(self, product_id: str):
        super().__init__(f"Product already exists: {product_id}", {"product_id": product_id})


class InvalidPriceError(ContractError):
    code = "invalid_price"

    def __init__(self, price: Any):
        super().__init__("price must be greater than zero", {"price": str(price)})


class IncorrectPaymentError(ContractError):
    code = "incorrect_payment"

    def __init__(self, product_id: str, price: Any, payment: Any):
        super().__init__(
            "incorrect payment amount",
            {"product_id": product_id, "price": str(price), "payment": str(payment)},
        )


class AlreadyPurchasedError(ContractError):
    code = "already_purchased"

    def __init__(self, product_id: str):
        super().__init__(f"Product already purchased: {product_id}", {"product_id": product_id})


class SelfPurchaseError(ContractError):
    code = "self_purchase"

    def __init__(self, product_id: str, account: str):
        super().__init__(
            "seller cannot purchase own product", {"product_id": product_id, "account": account}
        )


class NotCertifiedError(ContractError):
    code = "not_certified"

    def __init__(self, product_id: str):
        super().__init__(
            f"Product has no halal certificate: {product_id}", {"product_id": product_id}
        )


class UnauthorizedError(ContractError):
    code = "unauthorized"

    def __init__(self, account: str, action: str):
        super().__init__(
            f"{account} is not allowed to {action}", {"account": account, "action": action}
        )


class CertificationRefusedError(ContractError):
    code = "certification_refused"

    def __init__(self, product_id: str, violations: list):
        super().__init__(
            f"Certification refused for {product_id}",
            {"product_id": product_id, "violations": list(violations)},
        )


class MalformedTransactionError(ContractError):
    code = "malformed_transaction"

    def __init__(self, tx_id: str, kind: str, fields: list):
        super().__init__(
            f"Transaction {tx_id} ({kind}) is missing or has invalid fields: {', '.join(fields)}",
            {"tx_id": tx_id, "kind": kind, "fields": list(fields)},
        )
