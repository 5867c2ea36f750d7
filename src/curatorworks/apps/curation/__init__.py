"""Curation pipeline: triage, strict critique and tournament sessions."""

from .config import CurationSettings, load_settings
from .curation_types import CritiqueResult, Tag
from .errors import (
    AlreadyExists,
    BudgetExceeded,
    CurationError,
    FeatureDisabled,
    InvalidInput,
    InvalidSessionTransition,
    MalformedResponse,
    NoImageProvided,
    NotFound,
    UpstreamUnavailable,
)
from .governor import BudgetGovernor
from .models import BatchSession, Collection, Curated, TournamentComparison, Uncurated, Work
from .store import CurationStore, InMemoryStore, JsonFileStore

__all__ = [
    "CurationSettings",
    "load_settings",
    "CritiqueResult",
    "Tag",
    "AlreadyExists",
    "BudgetExceeded",
    "CurationError",
    "FeatureDisabled",
    "InvalidInput",
    "InvalidSessionTransition",
    "MalformedResponse",
    "NoImageProvided",
    "NotFound",
    "UpstreamUnavailable",
    "BudgetGovernor",
    "BatchSession",
    "Collection",
    "Curated",
    "TournamentComparison",
    "Uncurated",
    "Work",
    "CurationStore",
    "InMemoryStore",
    "JsonFileStore",
]
