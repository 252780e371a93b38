"""Error taxonomy for promptcraft.

The core never lets these escape to its caller.  They are returned inside
result objects (:class:`~promptcraft.core.orchestrator.EnhancementFailure`) or
recorded as ``last_error`` on the stores, so the caller can map each ``kind``
to a readable message.

``ProviderCallError`` is the only exception that is actually raised: providers
raise it at the HTTP boundary and the orchestrator catches and classifies it.
"""


class PromptcraftError(Exception):
    """Base class for every typed failure the core reports."""

    kind: str = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"type": self.kind, "message": self.message}


class EmptyPromptError(PromptcraftError):
    """The caller gave nothing to enhance; rejected before any I/O."""

    kind = "empty_prompt"


class InvalidOptionsError(PromptcraftError):
    """The facet snapshot is not a string-keyed, JSON-serializable mapping."""

    kind = "invalid_options"


class TemplateResolutionFallback(PromptcraftError):
    """Informational: a lower resolution tier supplied the instructions."""

    kind = "template_fallback"


class ProviderError(PromptcraftError):
    """A provider call failed.  Recoverable: retry with different settings."""

    kind = "provider_error"


class AuthError(ProviderError):
    kind = "auth"


class ProviderTimeoutError(ProviderError):
    """Timeout or refused connection reported by the provider layer."""

    kind = "timeout"


class RateLimitError(ProviderError):
    kind = "rate_limit"


class UnknownProviderError(ProviderError):
    kind = "unknown_provider_error"


class LineageIntegrityError(PromptcraftError):
    """An enhanced entry was attached to a parent that does not exist."""

    kind = "lineage_integrity"


class PersistenceError(PromptcraftError):
    """A store write failed; in-memory state was kept."""

    kind = "persistence"


class ImportValidationError(PromptcraftError):
    """An import document was malformed and nothing was merged."""

    kind = "import_validation"


class ProviderCallError(Exception):
    """Raised by providers with the raw error signal of the external service.

    Args:
        signal: Error text or status description from the provider.
        status_code: HTTP status, when the failure came from a response.
    """

    def __init__(self, signal: str, status_code: int | None = None) -> None:
        super().__init__(signal)
        self.signal = signal
        self.status_code = status_code
