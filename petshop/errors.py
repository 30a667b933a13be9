### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Error Types -
# Date: 10/19/2026
# Python: 3.11
####################

"""
PetShop Error Types

Every error carries a user-facing message. Storage errors are caught at
service boundaries and surfaced through ``last_errors``; credential and
registration errors propagate to the caller.
"""


class PetShopError(Exception):
    """Base class for all PetShop errors"""

    pass


# ========================================
# Remote Store Errors
# ========================================


class RemoteStoreError(PetShopError):
    """Raised when the remote store returns an unexpected response"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConflictError(RemoteStoreError):
    """Raised when a write carries a stale or missing version token"""

    def __init__(self, path: str):
        super().__init__(f"Write conflict on {path}: remote file changed", status_code=409)
        self.path = path


class RemoteTimeoutError(RemoteStoreError):
    """Raised when a remote request times out (retryable)"""

    pass


class RemoteConnectionError(RemoteStoreError):
    """Raised when the remote store is unreachable"""

    pass


class RemoteAuthError(RemoteStoreError):
    """Raised when the remote store rejects the credentials"""

    pass


class ConnectionUnavailableError(RemoteStoreError):
    """Raised when no token or backend URL is configured"""

    def __init__(self, message: str = "No GitHub token or API URL configured. Check the storage settings."):
        super().__init__(message)


class DecodingError(PetShopError):
    """Raised when remote or cached data cannot be decoded"""

    pass


# ========================================
# Company Errors
# ========================================


class CompanyError(PetShopError):
    """Base class for company registry errors"""

    pass


class UsernameExistsError(CompanyError):
    """Raised when registering a username that is already taken"""

    def __init__(self, username: str):
        super().__init__(f"Username '{username}' is already in use.")
        self.username = username


class InvalidCredentialsError(CompanyError):
    """Raised when a username/password pair does not match"""

    def __init__(self, message: str = "Invalid username or password."):
        super().__init__(message)


class CompanyNotFoundError(CompanyError):
    """Raised when no company matches the given username or id"""

    def __init__(self, message: str = "Company not found."):
        super().__init__(message)


class TrialExpiredError(CompanyError):
    """Raised when logging into a company whose trial window has ended"""

    def __init__(self, username: str):
        super().__init__(f"The trial period for '{username}' has expired.")
        self.username = username


# ========================================
# Checkout Errors
# ========================================


class CheckoutError(PetShopError):
    """Base class for cart and sale errors"""

    pass


class ProductNotFoundError(CheckoutError):
    """Raised when no product matches a barcode"""

    def __init__(self, barcode: str):
        super().__init__(f"No product with barcode '{barcode}'.")
        self.barcode = barcode


class InsufficientStockError(CheckoutError):
    """Raised when a cart line asks for more units than are in stock"""

    def __init__(self, barcode: str, requested: int, available: int):
        super().__init__(
            f"Only {available} unit(s) of '{barcode}' in stock, {requested} requested."
        )
        self.barcode = barcode
        self.requested = requested
        self.available = available


class EmptyCartError(CheckoutError):
    """Raised when completing a sale with an empty cart"""

    def __init__(self):
        super().__init__("Cart is empty.")
