"""Persistence boundary for Works, Tags, Collections, sessions and comparisons."""

from __future__ import annotations

import abc
import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .curation_types import Tag
from .errors import AlreadyExists, InvalidInput, NotFound
from .models import BatchSession, Collection, TournamentComparison, Work

logger = logging.getLogger(__name__)


class CurationStore(abc.ABC):
    """Async key-value store; each call is atomic, nothing spans calls."""

    @abc.abstractmethod
    async def get_work(self, work_id: str) -> Work: ...

    @abc.abstractmethod
    async def create_work(self, work: Work) -> Work: ...

    @abc.abstractmethod
    async def upsert_work(self, work: Work) -> Work: ...

    @abc.abstractmethod
    async def list_works(self) -> List[Work]: ...

    @abc.abstractmethod
    async def get_tag(self, work_id: str) -> Optional[Tag]: ...

    @abc.abstractmethod
    async def upsert_tag(self, work_id: str, tag: Tag) -> None: ...

    @abc.abstractmethod
    async def create_collection(self, collection: Collection) -> Collection: ...

    @abc.abstractmethod
    async def get_collection(self, collection_id: str) -> Collection: ...

    @abc.abstractmethod
    async def add_to_collection(self, collection_id: str, work_id: str) -> Collection: ...

    @abc.abstractmethod
    async def remove_from_collection(
        self, collection_id: str, work_id: str
    ) -> Collection: ...

    @abc.abstractmethod
    async def delete_collection(self, collection_id: str) -> None: ...

    @abc.abstractmethod
    async def create_session(self, session: BatchSession) -> BatchSession: ...

    @abc.abstractmethod
    async def get_session(self, session_id: str) -> BatchSession: ...

    @abc.abstractmethod
    async def update_session(self, session: BatchSession) -> BatchSession: ...

    @abc.abstractmethod
    async def list_sessions(
        self, *, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[BatchSession]: ...

    @abc.abstractmethod
    async def create_comparison(
        self, comparison: TournamentComparison
    ) -> TournamentComparison: ...

    @abc.abstractmethod
    async def get_comparison(self, comparison_id: str) -> TournamentComparison: ...

    @abc.abstractmethod
    async def resolve_comparison(
        self,
        comparison_id: str,
        winner_id: Optional[str],
        reasoning: Optional[str],
    ) -> TournamentComparison: ...

    @abc.abstractmethod
    async def record_comparison_failure(
        self, comparison_id: str, reason: str
    ) -> TournamentComparison: ...

    @abc.abstractmethod
    async def list_comparisons(self, session_id: str) -> List[TournamentComparison]: ...

    @abc.abstractmethod
    async def get_budget_state(self) -> Optional[Dict[str, object]]: ...

    @abc.abstractmethod
    async def save_budget_state(self, state: Dict[str, object]) -> None: ...


class InMemoryStore(CurationStore):
    """Dict-backed store; records are copied in and out so callers never alias."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._reset()

    def _reset(self) -> None:
        self._works: Dict[str, Work] = {}
        self._tags: Dict[str, Tag] = {}
        self._collections: Dict[str, Collection] = {}
        self._sessions: Dict[str, BatchSession] = {}
        self._comparisons: Dict[str, TournamentComparison] = {}
        self._budget: Optional[Dict[str, object]] = None

    def _refresh(self) -> None:
        """Hook for subclasses; called with the lock held before every call."""

    async def _after_write(self) -> None:
        """Hook for subclasses; called with the lock held."""

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        async with self._lock:
            self._refresh()
            yield

    @staticmethod
    def _lookup(table: Dict[str, object], key: str, label: str):
        try:
            return table[key]
        except KeyError:
            raise NotFound(f"{label} '{key}' not found") from None

    # Works -----------------------------------------------------------------
    async def get_work(self, work_id: str) -> Work:
        async with self._locked():
            return copy.deepcopy(self._lookup(self._works, work_id, "Work"))

    async def create_work(self, work: Work) -> Work:
        """Register a new Work; an existing id is refused so its curation survives."""

        if not work.id:
            raise InvalidInput("Work id is required")
        async with self._locked():
            if work.id in self._works:
                raise AlreadyExists(
                    f"Work '{work.id}' already exists",
                    hint="Works are registered once; curation is written by the critic",
                )
            self._works[work.id] = copy.deepcopy(work)
            await self._after_write()
        return work

    async def upsert_work(self, work: Work) -> Work:
        if not work.id:
            raise InvalidInput("Work id is required")
        async with self._locked():
            self._works[work.id] = copy.deepcopy(work)
            await self._after_write()
        return work

    async def list_works(self) -> List[Work]:
        async with self._locked():
            return [copy.deepcopy(work) for work in self._works.values()]

    # Tags ------------------------------------------------------------------
    async def get_tag(self, work_id: str) -> Optional[Tag]:
        async with self._locked():
            tag = self._tags.get(work_id)
            return copy.deepcopy(tag) if tag is not None else None

    async def upsert_tag(self, work_id: str, tag: Tag) -> None:
        async with self._locked():
            self._lookup(self._works, work_id, "Work")
            self._tags[work_id] = copy.deepcopy(tag)
            await self._after_write()

    # Collections -----------------------------------------------------------
    async def create_collection(self, collection: Collection) -> Collection:
        async with self._locked():
            for work_id in collection.work_ids:
                self._lookup(self._works, work_id, "Work")
            if collection.id in self._collections:
                raise AlreadyExists(f"Collection '{collection.id}' already exists")
            self._collections[collection.id] = copy.deepcopy(collection)
            await self._after_write()
        return collection

    async def get_collection(self, collection_id: str) -> Collection:
        async with self._locked():
            return copy.deepcopy(
                self._lookup(self._collections, collection_id, "Collection")
            )

    async def add_to_collection(self, collection_id: str, work_id: str) -> Collection:
        async with self._locked():
            collection = self._lookup(self._collections, collection_id, "Collection")
            self._lookup(self._works, work_id, "Work")
            if collection.add(work_id):
                await self._after_write()
            return copy.deepcopy(collection)

    async def remove_from_collection(
        self, collection_id: str, work_id: str
    ) -> Collection:
        async with self._locked():
            collection = self._lookup(self._collections, collection_id, "Collection")
            if collection.remove(work_id):
                await self._after_write()
            return copy.deepcopy(collection)

    async def delete_collection(self, collection_id: str) -> None:
        async with self._locked():
            self._lookup(self._collections, collection_id, "Collection")
            del self._collections[collection_id]
            await self._after_write()

    # Sessions --------------------------------------------------------------
    async def create_session(self, session: BatchSession) -> BatchSession:
        async with self._locked():
            if session.id in self._sessions:
                raise AlreadyExists(f"Session '{session.id}' already exists")
            self._sessions[session.id] = copy.deepcopy(session)
            await self._after_write()
        return session

    async def get_session(self, session_id: str) -> BatchSession:
        async with self._locked():
            return copy.deepcopy(self._lookup(self._sessions, session_id, "Session"))

    async def update_session(self, session: BatchSession) -> BatchSession:
        async with self._locked():
            self._lookup(self._sessions, session.id, "Session")
            self._sessions[session.id] = copy.deepcopy(session)
            await self._after_write()
        return session

    async def list_sessions(
        self, *, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[BatchSession]:
        async with self._locked():
            sessions = sorted(
                self._sessions.values(), key=lambda item: item.created_at, reverse=True
            )
            if status:
                sessions = [item for item in sessions if item.status == status]
            window = sessions[max(0, offset) : max(0, offset) + max(0, limit)]
            return [copy.deepcopy(item) for item in window]

    # Comparisons -----------------------------------------------------------
    async def create_comparison(
        self, comparison: TournamentComparison
    ) -> TournamentComparison:
        async with self._locked():
            self._lookup(self._sessions, comparison.session_id, "Session")
            self._comparisons[comparison.id] = copy.deepcopy(comparison)
            await self._after_write()
        return comparison

    async def get_comparison(self, comparison_id: str) -> TournamentComparison:
        async with self._locked():
            return copy.deepcopy(
                self._lookup(self._comparisons, comparison_id, "Comparison")
            )

    async def resolve_comparison(
        self,
        comparison_id: str,
        winner_id: Optional[str],
        reasoning: Optional[str],
    ) -> TournamentComparison:
        async with self._locked():
            comparison = copy.deepcopy(
                self._lookup(self._comparisons, comparison_id, "Comparison")
            )
            comparison.resolve(winner_id, reasoning)
            self._comparisons[comparison_id] = comparison
            await self._after_write()
            return copy.deepcopy(comparison)

    async def record_comparison_failure(
        self, comparison_id: str, reason: str
    ) -> TournamentComparison:
        async with self._locked():
            comparison = copy.deepcopy(
                self._lookup(self._comparisons, comparison_id, "Comparison")
            )
            comparison.mark_failed(reason)
            self._comparisons[comparison_id] = comparison
            await self._after_write()
            return copy.deepcopy(comparison)

    async def list_comparisons(self, session_id: str) -> List[TournamentComparison]:
        async with self._locked():
            return [
                copy.deepcopy(item)
                for item in self._comparisons.values()
                if item.session_id == session_id
            ]

    # Budget ----------------------------------------------------------------
    async def get_budget_state(self) -> Optional[Dict[str, object]]:
        async with self._locked():
            return dict(self._budget) if self._budget is not None else None

    async def save_budget_state(self, state: Dict[str, object]) -> None:
        async with self._locked():
            self._budget = dict(state)
            await self._after_write()


class JsonFileStore(InMemoryStore):
    """In-memory store mirrored to a JSON snapshot after every write.

    The snapshot is re-read whenever the file on disk changed since this
    process last loaded or wrote it, so several CLI processes can share one
    store. A failed snapshot write restores the tables from disk and
    re-raises.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        self._seen: Optional[Tuple[int, int, int]] = None
        self._load()

    def _disk_marker(self) -> Optional[Tuple[int, int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _load(self) -> None:
        self._reset()
        marker = self._disk_marker()
        if marker is None:
            self._seen = None
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidInput(f"Unable to read store snapshot {self.path}: {exc}") from exc

        self._works = {
            item["id"]: Work.from_dict(item) for item in data.get("works", [])
        }
        self._tags = {
            work_id: Tag.from_dict(payload)
            for work_id, payload in (data.get("tags") or {}).items()
        }
        self._collections = {
            item["id"]: Collection.from_dict(item)
            for item in data.get("collections", [])
        }
        self._sessions = {
            item["id"]: BatchSession.from_dict(item) for item in data.get("sessions", [])
        }
        self._comparisons = {
            item["id"]: TournamentComparison.from_dict(item)
            for item in data.get("comparisons", [])
        }
        self._budget = data.get("budget")
        self._seen = marker
        logger.debug(
            "Loaded store snapshot %s (%d works, %d sessions)",
            self.path,
            len(self._works),
            len(self._sessions),
        )

    def _refresh(self) -> None:
        if self._disk_marker() != self._seen:
            self._load()

    def _snapshot(self) -> Dict[str, object]:
        return {
            "works": [work.to_dict() for work in self._works.values()],
            "tags": {work_id: tag.to_dict() for work_id, tag in self._tags.items()},
            "collections": [item.to_dict() for item in self._collections.values()],
            "sessions": [item.to_dict() for item in self._sessions.values()],
            "comparisons": [item.to_dict() for item in self._comparisons.values()],
            "budget": self._budget,
        }

    def _write_snapshot(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._snapshot(), indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    async def _after_write(self) -> None:
        try:
            self._write_snapshot()
        except OSError:
            logger.error("Failed to write store snapshot %s; reloading from disk", self.path)
            self._load()
            raise
        self._seen = self._disk_marker()


__all__ = ["CurationStore", "InMemoryStore", "JsonFileStore"]
