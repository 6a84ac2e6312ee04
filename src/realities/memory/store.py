"""Durable storage for saved realities, their fork lineage and the active profile."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional

from pydantic import ValidationError

from .backends import InMemoryBackend, KeyValueBackend, PersistenceError, SQLiteBackend
from .schema import PlanDocument, Profile, SavedArtifact, generate_reality_id, utc_now

LOGGER = logging.getLogger(__name__)

REALITIES_KEY = "hawkins_lab_realities"
PROFILE_KEY = "hawkins_lab_profile"
ACTIVE_REALITY_KEY = "hawkins_lab_active_reality"
DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024


class CorruptLineage(RuntimeError):
    """Raised when ``parent_id`` links form a cycle."""


@dataclass(slots=True)
class StoreEvent:
    """Change signal emitted after every store mutation."""

    kind: Literal["saved", "deleted", "profile", "cleared"]
    artifact_id: Optional[str] = None


@dataclass(slots=True)
class RealityNode:
    artifact: SavedArtifact
    children: List["RealityNode"] = field(default_factory=list)


@dataclass(slots=True)
class StorageInfo:
    used: int
    total: int
    percentage: float


Notifier = Callable[[StoreEvent], None]


class RealityStore:
    """Saved realities over an injected key-value backend.

    Artifacts are immutable once saved; forks and merges are new artifacts
    whose ``parent_id`` points at an existing one.
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        *,
        notify: Optional[Notifier] = None,
        capacity_bytes: Optional[int] = DEFAULT_CAPACITY_BYTES,
    ) -> None:
        if backend is None:
            backend = InMemoryBackend(capacity_bytes=capacity_bytes)
        self.backend: KeyValueBackend = backend
        self.capacity_bytes = capacity_bytes
        self._notify = notify
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, notify: Optional[Notifier] = None) -> "RealityStore":
        paths = config.get("paths") or {}
        storage = config.get("storage") or {}
        capacity = storage.get("capacity_bytes", DEFAULT_CAPACITY_BYTES)
        if not isinstance(capacity, int) or capacity <= 0:
            capacity = None

        db_path = paths.get("db_path")
        if not db_path:
            data_path = paths.get("data") or "data"
            db_path = Path(data_path) / "realities.sqlite"
        backend = SQLiteBackend(Path(db_path), capacity_bytes=capacity)
        return cls(backend, notify=notify, capacity_bytes=capacity)

    def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "RealityStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Artifact operations --------------------------------------------------------------
    def save(
        self,
        name: str,
        document: PlanDocument,
        profile: Profile,
        prompt: str,
        parent_id: Optional[str] = None,
    ) -> SavedArtifact:
        """Persist a new artifact and mark it active.

        Raises ``PersistenceError`` if the backend rejects the write; in that
        case neither the artifact list nor the active pointer changes.
        """
        with self._lock:
            previous_raw = self.backend.get(REALITIES_KEY)
            artifacts = self._decode_artifacts(previous_raw)
            index = {artifact.id: artifact for artifact in artifacts}

            artifact_id = generate_reality_id()
            while artifact_id in index:
                artifact_id = generate_reality_id()
            if parent_id is not None:
                self._ensure_acyclic(artifact_id, parent_id, index)

            artifact = SavedArtifact(
                id=artifact_id,
                name=name,
                parent_id=parent_id,
                created_at=utc_now(),
                data=document.model_copy(deep=True),
                profile=profile.model_copy(deep=True),
                prompt=prompt,
            )
            artifacts.append(artifact)
            self.backend.set(REALITIES_KEY, self._encode_artifacts(artifacts))
            try:
                self.backend.set(ACTIVE_REALITY_KEY, artifact.id)
            except PersistenceError:
                self._restore(REALITIES_KEY, previous_raw)
                raise

        LOGGER.debug("Saved reality %s (parent=%s)", artifact.id, parent_id)
        self._emit(StoreEvent("saved", artifact.id))
        return artifact

    def get_all(self) -> List[SavedArtifact]:
        return self._decode_artifacts(self.backend.get(REALITIES_KEY))

    def get_by_id(self, artifact_id: str) -> Optional[SavedArtifact]:
        for artifact in self.get_all():
            if artifact.id == artifact_id:
                return artifact
        return None

    def delete(self, artifact_id: str) -> None:
        """Remove an artifact. Unknown ids are ignored; children keep their ``parent_id``."""
        with self._lock:
            artifacts = self.get_all()
            remaining = [artifact for artifact in artifacts if artifact.id != artifact_id]
            if len(remaining) == len(artifacts):
                return
            self.backend.set(REALITIES_KEY, self._encode_artifacts(remaining))
            if self.backend.get(ACTIVE_REALITY_KEY) == artifact_id:
                self.backend.delete(ACTIVE_REALITY_KEY)

        LOGGER.debug("Deleted reality %s", artifact_id)
        self._emit(StoreEvent("deleted", artifact_id))

    def get_children(self, parent_id: str) -> List[SavedArtifact]:
        return [artifact for artifact in self.get_all() if artifact.parent_id == parent_id]

    def get_parent(self, artifact: SavedArtifact) -> Optional[SavedArtifact]:
        if not artifact.parent_id:
            return None
        return self.get_by_id(artifact.parent_id)

    def get_ancestry_chain(self, artifact_id: str) -> List[SavedArtifact]:
        """Return the lineage from the root down to ``artifact_id``.

        A dangling ``parent_id`` ends the walk; a cycle raises ``CorruptLineage``.
        """
        index = {artifact.id: artifact for artifact in self.get_all()}
        chain: List[SavedArtifact] = []
        visited: set[str] = set()
        current = index.get(artifact_id)
        while current is not None:
            if current.id in visited:
                raise CorruptLineage(
                    f"Fork lineage of {artifact_id} loops back through {current.id}."
                )
            visited.add(current.id)
            chain.append(current)
            current = index.get(current.parent_id) if current.parent_id else None
        chain.reverse()
        return chain

    def get_roots(self) -> List[SavedArtifact]:
        """Artifacts without a resolvable parent."""
        artifacts = self.get_all()
        known = {artifact.id for artifact in artifacts}
        return [
            artifact
            for artifact in artifacts
            if not artifact.parent_id or artifact.parent_id not in known
        ]

    def build_tree(self) -> List[RealityNode]:
        """Nest the fork forest under its roots. Members of a cycle have no root and are omitted."""
        artifacts = self.get_all()
        by_parent: Dict[Optional[str], List[SavedArtifact]] = {}
        for artifact in artifacts:
            by_parent.setdefault(artifact.parent_id, []).append(artifact)
        visited: set[str] = set()

        def build(artifact: SavedArtifact) -> RealityNode:
            visited.add(artifact.id)
            children = [
                build(child)
                for child in by_parent.get(artifact.id, [])
                if child.id not in visited
            ]
            return RealityNode(artifact=artifact, children=children)

        return [build(root) for root in self.get_roots()]

    # Active pointer -------------------------------------------------------------------
    def get_active_id(self) -> Optional[str]:
        return self.backend.get(ACTIVE_REALITY_KEY) or None

    def set_active_id(self, artifact_id: str) -> None:
        self.backend.set(ACTIVE_REALITY_KEY, artifact_id)

    def clear_active_id(self) -> None:
        self.backend.delete(ACTIVE_REALITY_KEY)

    def get_active(self) -> Optional[SavedArtifact]:
        active_id = self.get_active_id()
        return self.get_by_id(active_id) if active_id else None

    # Profile operations ---------------------------------------------------------------
    def get_profile(self) -> Profile:
        """Return the active profile.

        On first use the default profile is written without a change event.
        """
        raw = self.backend.get(PROFILE_KEY)
        if raw:
            try:
                return Profile.model_validate_json(raw)
            except ValidationError as error:
                raise PersistenceError(f"Stored profile is unreadable: {error}") from error
        profile = Profile()
        try:
            self.backend.set(PROFILE_KEY, profile.model_dump_json(by_alias=True))
        except PersistenceError as error:
            LOGGER.warning("Default profile not persisted: %s", error)
        return profile

    def save_profile(self, profile: Profile) -> None:
        self.backend.set(PROFILE_KEY, profile.model_dump_json(by_alias=True))
        self._emit(StoreEvent("profile"))

    # Maintenance ----------------------------------------------------------------------
    def clear_all(self) -> None:
        with self._lock:
            for key in (REALITIES_KEY, PROFILE_KEY, ACTIVE_REALITY_KEY):
                self.backend.delete(key)
        self._emit(StoreEvent("cleared"))

    def storage_info(self) -> StorageInfo:
        used = self.backend.size()
        total = self.capacity_bytes or 0
        percentage = (used / total) * 100 if total else 0.0
        return StorageInfo(used=used, total=total, percentage=percentage)

    # Internals ------------------------------------------------------------------------
    def _emit(self, event: StoreEvent) -> None:
        if self._notify is None:
            return
        try:
            self._notify(event)
        except Exception:
            LOGGER.exception("Store listener failed on %s event", event.kind)

    def _restore(self, key: str, raw: Optional[str]) -> None:
        if raw is None:
            self.backend.delete(key)
        else:
            self.backend.set(key, raw)

    @staticmethod
    def _ensure_acyclic(
        artifact_id: str,
        parent_id: str,
        index: Mapping[str, SavedArtifact],
    ) -> None:
        visited: set[str] = set()
        current: Optional[str] = parent_id
        while current is not None:
            if current == artifact_id:
                raise CorruptLineage(f"Saving {artifact_id} under {parent_id} would create a cycle.")
            if current in visited:
                raise CorruptLineage(f"Ancestry of {parent_id} already contains a cycle.")
            visited.add(current)
            parent = index.get(current)
            current = parent.parent_id if parent is not None else None

    @staticmethod
    def _encode_artifacts(artifacts: List[SavedArtifact]) -> str:
        return json.dumps([artifact.model_dump(mode="json", by_alias=True) for artifact in artifacts])

    @staticmethod
    def _decode_artifacts(raw: Optional[str]) -> List[SavedArtifact]:
        if not raw:
            return []
        try:
            payload = json.loads(raw)
            if not isinstance(payload, list):
                raise PersistenceError("Stored realities must be a JSON list.")
            return [SavedArtifact.model_validate(item) for item in payload]
        except (json.JSONDecodeError, ValidationError) as error:
            raise PersistenceError(f"Stored realities are unreadable: {error}") from error


__all__ = [
    "ACTIVE_REALITY_KEY",
    "CorruptLineage",
    "DEFAULT_CAPACITY_BYTES",
    "PROFILE_KEY",
    "PersistenceError",
    "REALITIES_KEY",
    "RealityNode",
    "RealityStore",
    "StorageInfo",
    "StoreEvent",
]
