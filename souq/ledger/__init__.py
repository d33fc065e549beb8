"""
Ledger
Hash-chained blocks and the product registry contract.
"""

from .block import Block, Transaction, TxKind, genesis_block
from .chain import Blockchain, ChainVerification
from .contract import Certificate, ProductRecord, ProductRegistry, ProductStatus
from .errors import (
    AlreadyPurchasedError,
    CertificationRefusedError,
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

__all__ = [
    "Block",
    "Transaction",
    "TxKind",
    "genesis_block",
    "Blockchain",
    "ChainVerification",
    "Certificate",
    "ProductRecord",
    "ProductRegistry",
    "ProductStatus",
    "ContractError",
    "LedgerIntegrityError",
    "MalformedTransactionError",
    "ProductNotFoundError",
    "ProductAlreadyExistsError",
    "InvalidPriceError",
    "IncorrectPaymentError",
    "AlreadyPurchasedError",
    "SelfPurchaseError",
    "NotCertifiedError",
    "UnauthorizedError",
    "CertificationRefusedError",
]
