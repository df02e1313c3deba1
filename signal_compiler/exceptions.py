# signal_compiler/exceptions.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base exception for application errors.

    `kind` is stable; the HTTP and CLI layers report `{error: kind, detail: message}`.
    """

    kind = "AppError"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


class UnknownPackError(AppError):
    """Raised when a pack id is not in the catalog."""

    kind = "UnknownPack"

    def __init__(self, pack_id: str, known_packs: List[str]):
        super().__init__(f"Unknown pack '{pack_id}'. Known packs: {', '.join(known_packs) or '(none)'}")
        self.pack_id = pack_id
        self.known_packs = list(known_packs)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["known_packs"] = self.known_packs
        return out


class NoArtifactsError(AppError):
    """Raised when none of a pack's declared documents can be found."""

    kind = "NoArtifacts"


class InferenceError(AppError):
    """Base class for failures of the model call. All of them trigger fallback."""

    kind = "InferenceError"


class InferenceTimeoutError(InferenceError):
    """Raised when the model call exceeds its deadline."""

    kind = "InferenceTimeout"


class InferenceTransportError(InferenceError):
    """Raised when the model provider cannot be reached or returns an error."""

    kind = "InferenceTransportError"


class InferenceMalformedResponseError(InferenceError):
    """Raised when the model response does not parse into the candidate shape."""

    kind = "InferenceMalformedResponse"


class NoCachedRunError(AppError):
    """Raised when a pack has no stored run to export."""

    kind = "NoCachedRun"


class RunStoreError(AppError):
    """Raised when a stored run exists but cannot be read back."""

    kind = "RunStoreError"


class PersistenceError(RunStoreError):
    """Raised when a run cannot be written. Never fatal to a compile."""

    kind = "PersistenceError"


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""

    kind = "ConfigurationError"
