# app/core/exceptions.py
from typing import Dict, Optional

from fastapi import HTTPException, status


# HTTP-layer rejections, raised from dependencies before any domain code runs.

class UnauthorizedException(HTTPException):
    def __init__(self, detail: str = "Authentification requise"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail, {"WWW-Authenticate": "Bearer"})


class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "Accès refusé"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


class RateLimitException(HTTPException):
    """429 carrying Retry-After and the X-RateLimit-* headers of the rejected check"""

    def __init__(
            self,
            detail: str = "Trop de requêtes. Veuillez réessayer plus tard.",
            headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(status.HTTP_429_TOO_MANY_REQUESTS, detail, headers)


# Domain errors. The HTTP layer renders them through register_error_handlers.

class FunnelError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    public_message: Optional[str] = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    @property
    def client_message(self) -> str:
        return self.public_message or self.message or self.code


class ValidationError(FunnelError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class AuthFailure(FunnelError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_failure"
    public_message = "Email ou mot de passe incorrect"


class NotFoundError(FunnelError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class SessionNotFound(NotFoundError):
    code = "session_not_found"
    public_message = "Session introuvable"


class ConflictError(FunnelError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class DuplicateEmail(ConflictError):
    code = "duplicate_email"
    public_message = "Cet email est déjà utilisé"


class AlreadyPaid(ConflictError):
    code = "already_paid"
    public_message = "Cette session est déjà payée"


class PaymentMismatch(ValidationError):
    code = "payment_mismatch"
    public_message = "Paiement invalide"


class UpstreamError(FunnelError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"
    public_message = "Service temporairement indisponible. Veuillez réessayer."


class AssistantError(UpstreamError):
    code = "assistant_error"
    public_message = "Erreur lors de la génération de la réponse. Veuillez réessayer."


class AssistantTimeout(AssistantError):
    code = "assistant_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class PaymentProcessorError(UpstreamError):
    code = "payment_processor_error"
    public_message = "Erreur lors du traitement du paiement. Veuillez réessayer."


class EmailDeliveryError(UpstreamError):
    code = "email_delivery_error"


class TransientStoreError(FunnelError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "store_unavailable"
    public_message = "Service temporairement indisponible. Veuillez réessayer."
