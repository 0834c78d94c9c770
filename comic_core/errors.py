"""
Error taxonomy for the comic generation pipeline.

Stage-fatal errors end a run as FAILED. CharacterAnalysisFailure and
ImageGenerationFailure stay at their item (character or panel).
"""

from typing import Optional


class ComicGenerationError(Exception):
    """Base class for all pipeline errors."""


class MissingCredentials(ComicGenerationError):
    """A selected model needs a provider API key that is not configured."""

    def __init__(self, provider: str, model_id: Optional[str] = None):
        self.provider = provider
        self.model_id = model_id
        target = f" (model '{model_id}')" if model_id else ""
        super().__init__(f"A {provider} API key is required{target}. Set it in your environment or .env file.")


class UnsupportedCapability(ComicGenerationError):
    """The selected model lacks a capability the operation requires."""

    def __init__(self, model_id: str, capability: str):
        self.model_id = model_id
        self.capability = capability
        super().__init__(f"Model '{model_id}' does not support {capability}")


class UnknownProviderDispatch(ComicGenerationError):
    """A model id resolves to no known provider."""

    def __init__(self, model_id: str, detail: str = ""):
        self.model_id = model_id
        message = f"Unknown model provider for {model_id}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class MalformedStructuredOutput(ComicGenerationError):
    """Panel extraction exhausted every fallback. Keeps the raw response for diagnosis."""

    def __init__(self, message: str, raw_response: str):
        self.raw_response = raw_response
        super().__init__(message)


class CharacterAnalysisFailure(ComicGenerationError):
    def __init__(self, character_name: str, reason: str):
        self.character_name = character_name
        self.reason = reason
        super().__init__(f"Failed to analyze character {character_name}: {reason}")


class ImageGenerationFailure(ComicGenerationError):
    pass


class ProviderRequestError(ComicGenerationError):
    """A provider answered with an error status or an unreadable body."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        prefix = f"{provider} request failed"
        if status is not None:
            prefix += f" with status {status}"
        super().__init__(f"{prefix}: {message}")


class IncompleteComicError(ComicGenerationError):
    """Raised when a panel set is handed to export before it is finished."""
