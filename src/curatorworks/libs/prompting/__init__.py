"""Registry for named prompt profiles shared across curation stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Generic, Iterable, List, Optional, TypeVar

__all__ = [
    "PromptProfileBase",
    "PromptLibrary",
    "UnknownProfile",
]


class UnknownProfile(KeyError):
    """Raised by :meth:`PromptLibrary.require` for an unregistered name."""


@dataclass(frozen=True)
class PromptProfileBase:
    """Metadata every prompt profile carries."""

    name: str
    description: str
    system_prompt: str


TProfile = TypeVar("TProfile", bound=PromptProfileBase)


class PromptLibrary(Generic[TProfile]):
    """Name-keyed registry of prompt profiles with a designated default."""

    def __init__(self, profiles: Iterable[TProfile], *, default: str) -> None:
        self._profiles: Dict[str, TProfile] = {}
        for profile in profiles:
            key = profile.name.lower()
            if key in self._profiles:
                raise ValueError(f"Duplicate prompt profile '{profile.name}'")
            self._profiles[key] = profile
        if default.lower() not in self._profiles:
            raise ValueError(f"Default profile '{default}' is not registered")
        self._default = default.lower()

    @property
    def default(self) -> TProfile:
        return self._profiles[self._default]

    def get(self, name: Optional[str]) -> TProfile:
        """Return the named profile, falling back to the default."""

        if not name:
            return self.default
        return self._profiles.get(name.lower(), self.default)

    def require(self, name: str) -> TProfile:
        """Return the named profile or raise :class:`UnknownProfile`."""

        try:
            return self._profiles[name.lower()]
        except KeyError:
            raise UnknownProfile(name) from None

    def list(self) -> List[TProfile]:
        return sorted(self._profiles.values(), key=lambda profile: profile.name)

    def names(self) -> List[str]:
        return [profile.name for profile in self.list()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._profiles
