"""Chat error classification and French fallback replies.

Failures inside the conversational checkout are never shown to the customer
as raw errors. Each one is classified into an `ErrorType`, and the matching
fallback gives a short French message plus the choices offered next
(retry, talk to a human, ...).
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorType(str, enum.Enum):
    """Chat error categories."""

    SYSTEM_ERROR = "SYSTEM_ERROR"
    AI_ERROR = "AI_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PAYMENT_ERROR = "PAYMENT_ERROR"
    PAYMENT_METHOD_ERROR = "PAYMENT_METHOD_ERROR"
    ORDER_SUMMARY_ERROR = "ORDER_SUMMARY_ERROR"
    FORM_STEP_ERROR = "FORM_STEP_ERROR"
    AI_RESPONSE_ERROR = "AI_RESPONSE_ERROR"


class ErrorSeverity(str, enum.Enum):
    """How serious a chat error is."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    FATAL = "FATAL"


TALK_TO_ADVISOR = "Parler à un conseiller"
RETRY = "Réessayer"


@dataclass(frozen=True)
class ChatFallback:
    """Reply shown to the customer for an error type."""

    message: str
    severity: ErrorSeverity
    retryable: bool
    choices: list[str] = field(default_factory=list)


FALLBACKS: dict[ErrorType, ChatFallback] = {
    ErrorType.SYSTEM_ERROR: ChatFallback(
        message="Une erreur système s'est produite. Veuillez réessayer.",
        severity=ErrorSeverity.HIGH,
        retryable=True,
        choices=[RETRY, "Contacter le support"],
    ),
    ErrorType.AI_ERROR: ChatFallback(
        message=(
            "Je suis désolée, j'ai du mal à comprendre votre demande. "
            "Puis-je vous rediriger vers notre service client ?"
        ),
        severity=ErrorSeverity.MEDIUM,
        retryable=True,
        choices=[RETRY, TALK_TO_ADVISOR, "Voir les produits"],
    ),
    ErrorType.DATABASE_ERROR: ChatFallback(
        message=(
            "Je rencontre un problème technique. "
            "Pouvons-nous reprendre dans quelques instants ?"
        ),
        severity=ErrorSeverity.HIGH,
        retryable=False,
        choices=["Réessayer plus tard", TALK_TO_ADVISOR],
    ),
    ErrorType.NETWORK_ERROR: ChatFallback(
        message="La connexion semble instable. Pouvez-vous réessayer ?",
        severity=ErrorSeverity.MEDIUM,
        retryable=True,
        choices=[RETRY, TALK_TO_ADVISOR],
    ),
    ErrorType.UNKNOWN_ERROR: ChatFallback(
        message="Je suis désolée, quelque chose ne s'est pas passé comme prévu.",
        severity=ErrorSeverity.HIGH,
        retryable=False,
        choices=[RETRY, TALK_TO_ADVISOR],
    ),
    ErrorType.VALIDATION_ERROR: ChatFallback(
        message="Certaines informations semblent incorrectes. Pouvez-vous vérifier ?",
        severity=ErrorSeverity.LOW,
        retryable=True,
        choices=["Modifier les informations", TALK_TO_ADVISOR],
    ),
    ErrorType.PAYMENT_ERROR: ChatFallback(
        message=(
            "Le paiement n'a pas pu être traité. "
            "Voulez-vous essayer un autre moyen de paiement ?"
        ),
        severity=ErrorSeverity.HIGH,
        retryable=True,
        choices=["Choisir un autre moyen de paiement", TALK_TO_ADVISOR],
    ),
    ErrorType.PAYMENT_METHOD_ERROR: ChatFallback(
        message=(
            "Cette méthode de paiement n'est pas disponible pour le moment. "
            "Veuillez en choisir une autre."
        ),
        severity=ErrorSeverity.MEDIUM,
        retryable=True,
        choices=["Choisir un autre moyen de paiement", TALK_TO_ADVISOR],
    ),
    ErrorType.ORDER_SUMMARY_ERROR: ChatFallback(
        message="Une erreur s'est produite lors de la création du résumé de votre commande.",
        severity=ErrorSeverity.MEDIUM,
        retryable=True,
        choices=[RETRY, "Recommencer la commande"],
    ),
    ErrorType.FORM_STEP_ERROR: ChatFallback(
        message="Une erreur s'est produite lors de la validation du formulaire.",
        severity=ErrorSeverity.LOW,
        retryable=True,
        choices=[RETRY, "Modifier les informations"],
    ),
    ErrorType.AI_RESPONSE_ERROR: ChatFallback(
        message="Je suis désolée, je n'ai pas pu traiter votre demande correctement.",
        severity=ErrorSeverity.MEDIUM,
        retryable=True,
        choices=[RETRY, TALK_TO_ADVISOR],
    ),
}


class ChatError(Exception):
    """Error raised inside the checkout flow with a known chat category."""

    def __init__(self, error_type: ErrorType, detail: str = "") -> None:
        self.error_type = error_type
        self.detail = detail
        super().__init__(detail or error_type.value)


def classify_exception(exc: BaseException) -> ErrorType:
    """Map an exception raised while handling a chat turn to an ErrorType."""
    if isinstance(exc, ChatError):
        return exc.error_type
    if isinstance(exc, SQLAlchemyError):
        return ErrorType.DATABASE_ERROR
    if isinstance(exc, (httpx.RequestError, ConnectionError, TimeoutError)):
        return ErrorType.NETWORK_ERROR
    if isinstance(exc, ValueError):
        return ErrorType.VALIDATION_ERROR
    return ErrorType.UNKNOWN_ERROR


def fallback_for(error_type: ErrorType) -> ChatFallback:
    return FALLBACKS.get(error_type, FALLBACKS[ErrorType.UNKNOWN_ERROR])


def build_error_reply(exc: BaseException, step: str | None = None) -> dict[str, Any]:
    """Build the chat reply payload for a failed turn.

    HIGH and FATAL errors are logged with their traceback, lower severities
    as warnings.
    """
    error_type = classify_exception(exc)
    fallback = fallback_for(error_type)

    if fallback.severity in (ErrorSeverity.HIGH, ErrorSeverity.FATAL):
        logger.error(f"Chat error {error_type.value} at step {step}: {exc}", exc_info=exc)
    else:
        logger.warning(f"Chat error {error_type.value} at step {step}: {exc}")

    return {
        "message": fallback.message,
        "choices": list(fallback.choices),
        "error": {
            "type": error_type.value,
            "severity": fallback.severity.value,
            "retryable": fallback.retryable,
        },
    }
