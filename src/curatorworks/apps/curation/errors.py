"""Error taxonomy shared by the curation stages."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from curatorworks.libs.vlm import InvalidImageError, VLMBackendError


class CurationError(RuntimeError):
    """Base class for failures a caller can act on (retry vs. abandon)."""

    kind = "curation_error"
    retryable = False

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "type": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.hint:
            payload["hint"] = self.hint
        return payload


class InvalidInput(CurationError):
    kind = "invalid_input"


class NoImageProvided(InvalidInput):
    kind = "no_image_provided"


class NotFound(CurationError):
    kind = "not_found"


class BudgetExceeded(CurationError):
    """The governor refused a reservation; back off until the next calendar day."""

    kind = "budget_exceeded"

    def __init__(self, *, requested: float, spent: float, budget: float) -> None:
        super().__init__(
            f"Daily budget {budget:.2f} exhausted "
            f"(spent {spent:.2f}, requested {requested:.2f})",
            hint="Retry after the next calendar-day reset",
        )
        self.requested = requested
        self.spent = spent
        self.budget = budget


class MalformedResponse(CurationError):
    """The vision backend returned text that does not hold a usable JSON object."""

    kind = "malformed_response"

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class UpstreamUnavailable(CurationError):
    kind = "upstream_unavailable"
    retryable = True


class InvalidSessionTransition(CurationError):
    kind = "invalid_session_transition"


class FeatureDisabled(CurationError):
    """A curation mode is switched off in configuration."""

    kind = "feature_disabled"


class AlreadyExists(InvalidInput):
    kind = "already_exists"


@contextmanager
def backend_errors() -> Iterator[None]:
    """Re-raise vision client failures as curation errors."""

    try:
        yield
    except InvalidImageError as exc:
        raise InvalidInput(str(exc)) from exc
    except VLMBackendError as exc:
        raise UpstreamUnavailable(str(exc)) from exc


__all__ = [
    "CurationError",
    "InvalidInput",
    "AlreadyExists",
    "NoImageProvided",
    "NotFound",
    "BudgetExceeded",
    "MalformedResponse",
    "UpstreamUnavailable",
    "InvalidSessionTransition",
    "FeatureDisabled",
    "backend_errors",
]
