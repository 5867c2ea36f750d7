"""Composition root wiring one governor, store and client into every stage."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from curatorworks.libs.vlm import VisionClient, VisionCompletion

from .config import CurationSettings, load_settings
from .critic import StrictCritic
from .dispatcher import AutoCurationDispatcher
from .errors import InvalidInput
from .governor import BudgetGovernor
from .prompts import CRITIC_PERSONAS
from .store import CurationStore, InMemoryStore, JsonFileStore
from .tournament import PairwiseComparator, TournamentOrchestrator
from .triage import TriageClassifier


@dataclass
class CurationRuntime:
    settings: CurationSettings
    client: VisionCompletion
    store: CurationStore
    governor: BudgetGovernor
    rng: random.Random = field(default_factory=random.Random)
    _critics: Dict[str, StrictCritic] = field(default_factory=dict)
    _orchestrators: Dict[str, TournamentOrchestrator] = field(default_factory=dict)
    _classifier: Optional[TriageClassifier] = None
    _dispatcher: Optional[AutoCurationDispatcher] = None

    @classmethod
    def build(
        cls,
        settings: Optional[CurationSettings] = None,
        *,
        client: Optional[VisionCompletion] = None,
        store: Optional[CurationStore] = None,
        governor: Optional[BudgetGovernor] = None,
        in_memory: bool = False,
        rng: Optional[random.Random] = None,
    ) -> "CurationRuntime":
        settings = settings or load_settings()
        if store is None:
            store = InMemoryStore() if in_memory else JsonFileStore(settings.store_path)
        return cls(
            settings=settings,
            client=client or VisionClient.from_settings(settings),
            store=store,
            governor=governor
            or BudgetGovernor(settings.triage_daily_budget_usd, ledger=store),
            rng=rng or random.Random(),
        )

    @property
    def classifier(self) -> TriageClassifier:
        if self._classifier is None:
            self._classifier = TriageClassifier(
                self.client, self.store, self.governor, self.settings
            )
        return self._classifier

    def _persona_name(self, name: Optional[str]) -> str:
        chosen = (name or self.settings.default_persona).lower()
        if chosen not in CRITIC_PERSONAS:
            raise InvalidInput(
                f"Unknown curator '{chosen}' (expected one of {CRITIC_PERSONAS.names()})"
            )
        return chosen

    def critic(self, persona: Optional[str] = None) -> StrictCritic:
        name = self._persona_name(persona)
        if name not in self._critics:
            self._critics[name] = StrictCritic(
                self.client,
                self.store,
                self.settings,
                CRITIC_PERSONAS.require(name),
                governor=self.governor,
            )
        return self._critics[name]

    def orchestrator(self, persona: Optional[str] = None) -> TournamentOrchestrator:
        name = self._persona_name(persona)
        if name not in self._orchestrators:
            self._orchestrators[name] = TournamentOrchestrator(
                self.store,
                self.critic(name),
                PairwiseComparator(self.client),
                self.settings,
                rng=self.rng,
            )
        return self._orchestrators[name]

    @property
    def dispatcher(self) -> AutoCurationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = AutoCurationDispatcher(self.classifier, self.critic())
        return self._dispatcher

    async def aclose(self) -> None:
        closer = getattr(self.client, "aclose", None)
        if closer is not None:
            await closer()


__all__ = ["CurationRuntime"]
