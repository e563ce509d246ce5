"""Exceptions for the chat pipeline.

Gateways translate library errors (redis, httpx, openai) into the gateway
classes below; the orchestrator wraps those into its own failure taxonomy.
"""
from typing import Any, Dict, Optional


class ChatPipelineException(Exception):
    """Base exception for the chat pipeline."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# History store


class HistoryStoreError(ChatPipelineException):
    """Raised when the history store cannot be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "HISTORY_STORE_ERROR", details)


# Prompt templates


class TemplateNotFoundError(ChatPipelineException):
    """Raised when no prompt template is stored under the requested name."""

    def __init__(self, name: str):
        message = f"Prompt template '{name}' not found"
        super().__init__(message, "TEMPLATE_NOT_FOUND", {"name": name})


class TemplateInvalidError(ChatPipelineException):
    """Raised when a stored template does not have exactly three positional slots."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TEMPLATE_INVALID", details)


class TemplateStoreError(ChatPipelineException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TEMPLATE_STORE_ERROR", details)


# Generative model


class ModelInvocationError(ChatPipelineException):
    """Base for classified model failures. Never retried."""

    pass


class ModelUnavailableError(ModelInvocationError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MODEL_UNAVAILABLE", details)


class ModelRejectedError(ModelInvocationError):
    """Raised when the model refuses the request (bad request, content policy)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MODEL_REJECTED", details)


class ModelTimeoutError(ModelInvocationError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MODEL_TIMEOUT", details)


# Reply delivery


class ReplyDeliveryError(ChatPipelineException):
    """Base for classified reply failures."""

    retryable: bool = False


class TransientReplyError(ReplyDeliveryError):
    """Network error, rate limit or server error from the channel."""

    retryable = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "REPLY_TRANSIENT", details)


class TokenExpiredError(ReplyDeliveryError):
    """The reply token was already used or its validity window elapsed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "REPLY_TOKEN_EXPIRED", details)


class ReplyRejectedError(ReplyDeliveryError):
    """Any other client error from the channel (auth, malformed payload)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "REPLY_REJECTED", details)


# Orchestrator failure taxonomy


class OrchestrationFailure(ChatPipelineException):
    """Failure recorded by the orchestrator, wrapping the gateway error."""

    def __init__(
        self,
        message: str,
        error_code: str,
        cause: Optional[BaseException] = None,
    ):
        details: Dict[str, Any] = {}
        if cause is not None:
            details["cause"] = type(cause).__name__
            details["cause_message"] = str(cause)
        super().__init__(message, error_code, details)
        self.cause = cause


class PrepareFailure(OrchestrationFailure):
    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}", "PREPARE_FAILURE", cause)
        self.stage = stage


class InvokeFailure(OrchestrationFailure):
    def __init__(self, cause: BaseException):
        super().__init__(f"model invocation failed: {cause}", "INVOKE_FAILURE", cause)


class ReplyFailure(OrchestrationFailure):
    def __init__(self, cause: BaseException, attempts: int):
        super().__init__(
            f"reply delivery failed after {attempts} attempt(s): {cause}",
            "REPLY_FAILURE",
            cause,
        )
        self.attempts = attempts


class SaveFailure(OrchestrationFailure):
    def __init__(self, cause: BaseException):
        super().__init__(f"history save failed: {cause}", "SAVE_FAILURE", cause)


class ExecutionTimeout(OrchestrationFailure):
    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"execution exceeded {timeout_seconds}s", "EXECUTION_TIMEOUT"
        )
        self.timeout_seconds = timeout_seconds


class InvalidTransitionError(ChatPipelineException):
    """Raised when a state handler returns a state its transition table forbids."""

    def __init__(self, source: str, target: str):
        message = f"Illegal transition {source} -> {target}"
        super().__init__(
            message, "INVALID_TRANSITION", {"from": source, "to": target}
        )


# Ingress


class SignatureValidationError(ChatPipelineException):
    def __init__(self, message: str = "signature validation failed"):
        super().__init__(message, "INVALID_SIGNATURE")


class EnqueueError(ChatPipelineException):
    """Raised when a chat request cannot be handed to the queue."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ENQUEUE_ERROR", details)
