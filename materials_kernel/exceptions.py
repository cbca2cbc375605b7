"""
Typed Exception Hierarchy for the Materials Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from MaterialsKernelError:

    MaterialsKernelError (base)
    |
    +-- InputError
    |   +-- InvalidInputError
    |       +-- UnknownVariantError
    |       +-- FileTooLargeError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- StorageError
    |   +-- FileUploadError
    |   +-- StoredFileNotFoundError
    |   +-- InvalidSignatureError
    |
    +-- PersistenceError
    |
    +-- RecordNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- SiteNotFoundError
    |
    +-- SiteError
    |   +-- DuplicateSiteCodeError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|------------------------------------------
Input        | INVALID_INPUT          | Non-positive amount, bad unit, bad length
             | UNKNOWN_VARIANT        | Steel diameter not in the kg/m table
             | FILE_TOO_LARGE         | Attachment above the upload size limit
-------------|------------------------|------------------------------------------
Stock        | INSUFFICIENT_STOCK     | Outgoing request exceeds the current level
-------------|------------------------|------------------------------------------
Storage      | FILE_UPLOAD_FAILED     | Blob store rejected the upload (non-fatal)
             | STORED_FILE_NOT_FOUND  | Signed URL requested for a missing object
             | INVALID_SIGNATURE      | Signed URL expired or tampered with
-------------|------------------------|------------------------------------------
Persistence  | PERSISTENCE_FAILED     | Level/ledger write failed (carries step)
-------------|------------------------|------------------------------------------
Not found    | TRANSACTION_NOT_FOUND  | Delete of an unknown ledger row
             | SITE_NOT_FOUND         | Site id unknown
-------------|------------------------|------------------------------------------
Site         | DUPLICATE_SITE_CODE    | Generated/explicit site code collides
-------------|------------------------|------------------------------------------
Config       | INVALID_CONFIGURATION  | Config value out of range or missing

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Input and stock errors abort a workflow before anything is written.

    try:
        service.dispatch(...)
    except InsufficientStockError as e:
        show_alert(f"Only {e.available} available, requested {e.requested}")

2. Upload failures are non-fatal. The shipment workflow catches
   FileUploadError, logs it, and records the transaction without an
   attachment.

3. PersistenceError carries the workflow ``step`` that failed so the caller
   can tell whether the level was written before the ledger insert failed.

===============================================================================
"""


class MaterialsKernelError(Exception):
    """
    Base exception for all materials kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "MATERIALS_KERNEL_ERROR"


# Input errors


class InputError(MaterialsKernelError):
    """Base exception for rejected user input."""

    code: str = "INPUT_ERROR"


class InvalidInputError(InputError):
    """A field failed validation."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class UnknownVariantError(InvalidInputError):
    """Variant key is not present in the material spec table."""

    code: str = "UNKNOWN_VARIANT"

    def __init__(self, kind: str, variant: str):
        self.kind = kind
        self.variant = variant
        super().__init__("variant", f"unknown {kind} variant {variant!r}")


class FileTooLargeError(InvalidInputError):
    """Attachment exceeds the configured upload size."""

    code: str = "FILE_TOO_LARGE"

    def __init__(self, file_name: str, size: int, limit: int):
        self.file_name = file_name
        self.size = size
        self.limit = limit
        super().__init__(
            "attachment",
            f"{file_name} is {size} bytes, limit is {limit} bytes",
        )


# Stock errors


class StockError(MaterialsKernelError):
    """Base exception for inventory level errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Outgoing request exceeds the available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, kind: str, variant: str | None, available, requested):
        self.kind = kind
        self.variant = variant
        self.available = available
        self.requested = requested
        label = f"{kind} {variant}" if variant else kind
        super().__init__(
            f"Insufficient stock for {label}: "
            f"available {available}, requested {requested}"
        )


# Storage errors


class StorageError(MaterialsKernelError):
    """Base exception for blob store errors."""

    code: str = "STORAGE_ERROR"


class FileUploadError(StorageError):
    """Blob store rejected or failed an upload."""

    code: str = "FILE_UPLOAD_FAILED"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Upload of {path} failed: {reason}")


class StoredFileNotFoundError(StorageError):
    """No stored object exists at the given path."""

    code: str = "STORED_FILE_NOT_FOUND"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Stored file not found: {path}")


class InvalidSignatureError(StorageError):
    """Signed URL is expired or its signature does not match."""

    code: str = "INVALID_SIGNATURE"

    def __init__(self, path: str, reason: str = "signature mismatch"):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid signed URL for {path}: {reason}")


# Persistence errors


class PersistenceError(MaterialsKernelError):
    """A write to the relational store failed."""

    code: str = "PERSISTENCE_FAILED"

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Persistence failed during {step}: {reason}")


# Lookup errors


class RecordNotFoundError(MaterialsKernelError):
    """Base exception for missing records."""

    code: str = "RECORD_NOT_FOUND"


class TransactionNotFoundError(RecordNotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, kind: str, transaction_id: str):
        self.kind = kind
        self.transaction_id = str(transaction_id)
        super().__init__(f"{kind} transaction not found: {transaction_id}")


class SiteNotFoundError(RecordNotFoundError):
    code: str = "SITE_NOT_FOUND"

    def __init__(self, site_id: str):
        self.site_id = str(site_id)
        super().__init__(f"Site not found: {site_id}")


# Site errors


class SiteError(MaterialsKernelError):
    """Base exception for site registry errors."""

    code: str = "SITE_ERROR"


class DuplicateSiteCodeError(SiteError):
    code: str = "DUPLICATE_SITE_CODE"

    def __init__(self, site_code: str):
        self.site_code = site_code
        super().__init__(f"Site code already exists: {site_code}")


# Configuration errors


class ConfigurationError(MaterialsKernelError):
    """Configuration value is missing or out of range."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration {key}: {reason}")
