"""
Exceptions for the compute marketplace core.

Provides a hierarchy of exceptions with HTTP-like error codes so the
calling layer can map failures to responses without inspecting messages.
"""
from typing import Optional


class ComputeMarketError(Exception):
    """Base exception for all compute marketplace errors."""

    def __init__(self, message: str, code: int = 500, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error_code": self.code,
            "error_type": type(self).__name__,
            "error_message": self.message,
            "retryable": self.retryable,
        }


# ============================================
# 4xx Client Errors
# ============================================

class InvalidArgument(ComputeMarketError):
    """400 Bad Request - Caller input is missing or malformed."""

    def __init__(self, message: str = "Invalid request data"):
        super().__init__(message, code=400, retryable=False)


class PreconditionFailed(ComputeMarketError):
    """A business rule read from chain state rejected the action."""

    code = 400

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message, code=type(self).code, retryable=False)
        self.reason = reason or type(self).__name__

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["reason"] = self.reason
        return result


class NotATokenHolder(PreconditionFailed):
    """Caller holds no tokens of the DAO."""
    code = 403


class ProposalAlreadyActive(PreconditionFailed):
    code = 409


class NoActiveProposal(PreconditionFailed):
    code = 409


class AlreadyVoted(PreconditionFailed):
    code = 409


class InsufficientSupply(PreconditionFailed):
    """Requested more tokens than the DAO has listed for sale."""
    code = 400


class PropertyAlreadyRented(PreconditionFailed):
    code = 409


class IncompleteOwnership(PreconditionFailed):
    """Caller does not hold the full token supply."""
    code = 403


class NotAuthorized(PreconditionFailed):
    code = 403


class ApprovalInsufficient(PreconditionFailed):
    code = 400


# ============================================
# Remote execution
# ============================================

class ContractCallReverted(ComputeMarketError):
    """The ledger reported that a call or estimate reverted."""

    def __init__(self, reason: str, operation: Optional[str] = None):
        message = f"{operation} reverted: {reason}" if operation else f"Execution reverted: {reason}"
        super().__init__(message, code=502, retryable=False)
        self.reason = reason
        self.operation = operation


# ============================================
# 5xx Infrastructure Errors
# ============================================

class InfrastructureError(ComputeMarketError):
    """503 Service Unavailable - A remote dependency failed."""

    def __init__(self, message: str = "Upstream service unavailable", operation: Optional[str] = None):
        if operation:
            message = f"Failed to {operation}: {message}"
        super().__init__(message, code=503, retryable=True)
        self.operation = operation


class RpcUnavailable(InfrastructureError):
    """The ledger JSON-RPC endpoint could not be reached or answered badly."""
    pass


class MetadataUnavailable(InfrastructureError):
    """The content store could not publish or resolve metadata."""
    pass
