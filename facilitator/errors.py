"""Error taxonomy for the facilitation engine."""
from __future__ import annotations
from enum import Enum
from typing import Optional


class FacilitatorError(Exception):
    pass


class PolicyError(FacilitatorError):
    """Intervention policy could not be evaluated. Always degrades to no-act."""


class GatewayErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    MODEL_NOT_FOUND = "model_not_found"
    INVALID_OUTPUT = "invalid_output"
    TIMEOUT = "timeout"
    BACKEND = "backend"


class GatewayError(FacilitatorError):
    def __init__(self, kind: GatewayErrorKind, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.model = model


class EvidenceError(FacilitatorError):
    """A single search backend failed. Never escapes the evidence source."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class PipelineError(FacilitatorError):
    """Fact-check or summarization could not produce a result."""


class InvalidRequestError(FacilitatorError, ValueError):
    pass
