"""
Domain errors and their safe HTTP mapping.

Services raise MarketplaceError subclasses. The API layer turns them into
HTTPException through BusinessError, which logs internally and keeps the
user-facing message generic where the detail would leak existence or
internals.
"""
import logging
from typing import Optional

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class BusinessError:
    """HTTP error factories with safe (non-leaky) messages."""

    @staticmethod
    def not_found(detail: str = "Resource not found", reason: str = "") -> HTTPException:
        """
        404 that doesn't confirm resource existence.

        Returned both when the row is absent and when the caller does not
        own it, so IDs cannot be enumerated.
        """
        if reason:
            logger.warning(f"Access denied / not found: {reason}")
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

    @staticmethod
    def unauthorized(detail: str = "Authentication failed", reason: str = "") -> HTTPException:
        logger.warning(f"Unauthorized access attempt: {reason or detail}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @staticmethod
    def forbidden(detail: str = "Access denied", reason: str = "") -> HTTPException:
        logger.warning(f"Forbidden access: {reason or detail}")
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """400 for input validation. Specific details are fine, the caller caused it."""
        logger.info(f"Bad request: {detail}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    @staticmethod
    def conflict(detail: str) -> HTTPException:
        logger.info(f"Conflict: {detail}")
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    @staticmethod
    def server_error(original_error: Optional[BaseException] = None) -> HTTPException:
        """
        Generic 500 - logs actual error internally, hides it from the user.

        Never expose stack traces, SQL errors, or internal paths.
        """
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {original_error}",
                exc_info=original_error,
            )
        else:
            logger.error("Internal server error occurred")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )


class MarketplaceError(Exception):
    """Base class for every error a workflow operation reports to its caller."""

    code = "error"

    def __init__(self, message: str, reason: str = ""):
        super().__init__(message)
        self.message = message
        # internal detail for logs only
        self.reason = reason

    def to_http(self) -> HTTPException:
        return BusinessError.server_error(self)


class ValidationError(MarketplaceError):
    code = "validation_error"

    def to_http(self) -> HTTPException:
        return BusinessError.bad_request(self.message)


class ProductNotFound(ValidationError):
    code = "product_not_found"

    def __init__(self, message: str = "Product not found for this wholesaler", reason: str = ""):
        super().__init__(message, reason)


class NotFoundOrUnauthorized(MarketplaceError):
    code = "not_found"

    def __init__(self, message: str = "Resource not found", reason: str = ""):
        super().__init__(message, reason)

    def to_http(self) -> HTTPException:
        return BusinessError.not_found(self.message, self.reason)


class PermissionDenied(MarketplaceError):
    code = "forbidden"

    def __init__(self, message: str = "Access denied", reason: str = ""):
        super().__init__(message, reason)

    def to_http(self) -> HTTPException:
        return BusinessError.forbidden(self.message, self.reason)


class Conflict(MarketplaceError):
    code = "conflict"

    def to_http(self) -> HTTPException:
        return BusinessError.conflict(self.message)


class AuthenticationFailure(MarketplaceError):
    """
    Bad credentials, inactive account or unapproved account.

    One class, distinct messages. Bad credentials map to 401, a valid
    login blocked by the onboarding gate maps to 403.
    """

    code = "authentication_failed"

    def __init__(self, message: str = "Invalid credentials", reason: str = "", blocked: bool = False):
        super().__init__(message, reason)
        self.blocked = blocked

    def to_http(self) -> HTTPException:
        if self.blocked:
            return BusinessError.forbidden(self.message, self.reason)
        return BusinessError.unauthorized(self.message, self.reason)


class UpstreamFailure(MarketplaceError):
    """Storage or collaborator failure. The caller only ever sees a generic message."""

    code = "upstream_failure"

    def __init__(self, message: str = "An internal error occurred. Please try again later.",
                 reason: str = "", original: Optional[BaseException] = None):
        super().__init__(message, reason)
        self.original = original

    def to_http(self) -> HTTPException:
        return BusinessError.server_error(self.original or self)
