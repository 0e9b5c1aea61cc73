"""
Domain exceptions for the bill ledger and claims.

This module defines the exception hierarchy shared by the ledger, claims and
realtime apps. Every error carries the HTTP status a view should answer with,
so views can stay thin and translate any ``SplitServiceError`` uniformly.
"""


class SplitServiceError(Exception):
    """Base exception for all bill splitting service errors."""
    status_code = 500
    default_code = 'error'
    default_detail = 'Unexpected error.'

    def __init__(self, message=None):
        super().__init__(message or self.default_detail)

    def as_response_data(self):
        """Body for an error response."""
        return {'error': str(self), 'code': self.default_code}


# =============================================================================
# Validation (always user-correctable, detected before any store access)
# =============================================================================

class ValidationError(SplitServiceError):
    """Bad shape, range or missing field."""
    status_code = 400
    default_code = 'invalid'
    default_detail = 'Invalid input.'


class MissingFieldError(ValidationError):
    default_code = 'missing_field'
    default_detail = 'Missing required fields.'


class InvalidIdentifierError(ValidationError):
    default_code = 'invalid_identifier'
    default_detail = 'Invalid identifier format.'


class InvalidQuantityError(ValidationError):
    default_code = 'invalid_quantity'
    default_detail = 'Invalid quantity.'


class InvalidTipError(ValidationError):
    default_code = 'invalid_tip'
    default_detail = 'Invalid tip amount.'


class InvalidNameError(ValidationError):
    default_code = 'invalid_name'
    default_detail = 'Name is invalid.'


class InvalidPaymentHandleError(ValidationError):
    default_code = 'invalid_payment_handle'
    default_detail = 'Invalid payment handle.'


class InvalidPaymentMethodError(ValidationError):
    default_code = 'invalid_payment_method'
    default_detail = 'Invalid payment method.'


class InvalidPriceError(ValidationError):
    default_code = 'invalid_price'
    default_detail = 'Price must be zero or greater.'


class EmptyClaimError(ValidationError):
    default_code = 'empty_claim'
    default_detail = 'No items selected.'


# =============================================================================
# Lookup
# =============================================================================

class NotFoundError(SplitServiceError):
    """Referenced bill, item or claim does not exist."""
    status_code = 404
    default_code = 'not_found'
    default_detail = 'Not found.'


class BillNotFoundError(NotFoundError):
    default_code = 'bill_not_found'
    default_detail = 'Bill not found.'


class LineItemNotFoundError(NotFoundError):
    default_code = 'line_item_not_found'
    default_detail = 'Line item not found.'


class ClaimNotFoundError(NotFoundError):
    default_code = 'claim_not_found'
    default_detail = 'Claim not found.'


# =============================================================================
# State
# =============================================================================

class InvalidStateError(SplitServiceError):
    """Operation not allowed in the claim's current status."""
    status_code = 409
    default_code = 'invalid_state'
    default_detail = 'Invalid state transition for claim.'


class ClaimExpiredError(InvalidStateError):
    default_code = 'claim_expired'
    default_detail = 'Claim has expired.'


class ConflictError(SplitServiceError):
    """Line item is referenced by claims (strict edit policy only)."""
    status_code = 409
    default_code = 'conflict'
    default_detail = 'Line item is already claimed by a guest.'


# =============================================================================
# Infrastructure
# =============================================================================

class StoreError(SplitServiceError):
    """Underlying persistence failure."""
    status_code = 503
    default_code = 'store_error'
    default_detail = 'Storage is temporarily unavailable.'


class TransportError(SplitServiceError):
    """Change-feed subscribe or delivery failure."""
    status_code = 503
    default_code = 'transport_error'
    default_detail = 'Realtime connection failed.'
