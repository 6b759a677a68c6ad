"""
Rebuild / Invalidation Controller.

Owns the only write path into a document store. Each collection moves
through a small state machine per rebuild attempt:

    Idle -> Scanning -> Validating -> Swapping -> Idle
               |            |             |
               +------------+-------------+--> Failed

Scanning fingerprints the source set; an unchanged fingerprint (and no
force) ends the attempt back in Idle. Validating runs the ingestion
pipeline. Swapping commits the new generation. Failed is terminal for the
attempt; the next rebuild request starts again from Scanning.

At most one rebuild runs per collection. Callers arriving while one is in
flight wait for it and receive its outcome (or its exception).
"""
from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from contentdb.core.cancellation import CancellationToken
from contentdb.core.exceptions import ContentDBException, RebuildCancelled, SourceNotFoundError
from contentdb.core.logging_config import LoggerMixin
from contentdb.ingestion.pipeline import IngestionPipeline
from contentdb.models.manifest import IngestionReport, ManifestEntry
from contentdb.schema.collection import CollectionDefinition
from contentdb.schema.registry import CollectionRegistry
from contentdb.storage.base import DocumentStore


class RebuildState(str, Enum):
    """Per-collection rebuild state."""
    IDLE = "idle"
    SCANNING = "scanning"
    VALIDATING = "validating"
    SWAPPING = "swapping"
    FAILED = "failed"


TRANSITIONS = {
    RebuildState.IDLE: {RebuildState.SCANNING},
    RebuildState.FAILED: {RebuildState.SCANNING},
    RebuildState.SCANNING: {RebuildState.VALIDATING, RebuildState.IDLE, RebuildState.FAILED},
    RebuildState.VALIDATING: {RebuildState.SWAPPING, RebuildState.IDLE, RebuildState.FAILED},
    RebuildState.SWAPPING: {RebuildState.IDLE, RebuildState.FAILED},
}


@dataclass(frozen=True)
class RebuildOutcome:
    """
    Result of one rebuild request.

    Attributes:
        collection: Collection name
        rebuilt: A new generation was committed
        cancelled: The request was cancelled before the commit point
        manifest: Active manifest entry after the attempt (None if never built)
        report: Ingestion report, when ingestion ran to completion
        error: Why a refresh kept the previous generation of a collection
            whose sources went missing
    """
    collection: str
    rebuilt: bool
    cancelled: bool = False
    manifest: Optional[ManifestEntry] = None
    report: Optional[IngestionReport] = None
    error: Optional[ContentDBException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def skipped(self) -> bool:
        """Sources were unchanged; nothing was ingested."""
        return not self.rebuilt and not self.cancelled and self.error is None


class RebuildController(LoggerMixin):
    """
    Coordinates ingestion and generation swaps for every collection.

    Example:
        >>> controller = RebuildController(registry, pipeline, store)
        >>> outcome = controller.rebuild("articles")
        >>> outcome.manifest.record_ids
        ['hello', 'world']
    """

    def __init__(
        self,
        registry: CollectionRegistry,
        pipeline: IngestionPipeline,
        store: DocumentStore,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.store = store
        self._lock = threading.Lock()
        self._states: Dict[str, RebuildState] = {name: RebuildState.IDLE for name in registry.names()}
        self._inflight: Dict[str, Future] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, name: str) -> RebuildState:
        self.registry.resolve(name)
        with self._lock:
            return self._states.get(name, RebuildState.IDLE)

    def _transition(self, name: str, target: RebuildState) -> None:
        with self._lock:
            current = self._states.get(name, RebuildState.IDLE)
            if target not in TRANSITIONS[current]:
                raise RuntimeError(f"Illegal rebuild transition for '{name}': {current.value} -> {target.value}")
            self._states[name] = target
        self.logger.debug(f"'{name}': {current.value} -> {target.value}")

    def is_stale(self, name: str) -> bool:
        """
        True when the collection was never built or its sources changed.

        Raises:
            SourceNotFoundError: sources are missing
        """
        definition = self.registry.resolve(name)
        entry = self.store.manifest_entry(name)
        if entry is None:
            return True
        return self.pipeline.scan(definition) != entry.fingerprint

    # ------------------------------------------------------------------
    # Rebuilds
    # ------------------------------------------------------------------

    def rebuild(
        self,
        name: str,
        force: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> RebuildOutcome:
        """
        Rebuild one collection, or join the rebuild already in flight.

        Args:
            name: Collection name
            force: Ingest and swap even if the fingerprint is unchanged
            cancel: Token checked until the commit point

        Returns:
            RebuildOutcome

        Raises:
            UnknownCollectionError: name is not registered
            SourceNotFoundError: sources are missing (state -> failed)
            BackendIOError: the swap failed (state -> failed, prior generation kept)
        """
        definition = self.registry.resolve(name)

        with self._lock:
            future = self._inflight.get(name)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[name] = future

        if not owner:
            self.logger.debug(f"Joining in-flight rebuild of '{name}'")
            return future.result()

        try:
            outcome = self._run(definition, force, cancel or CancellationToken())
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(outcome)
            return outcome
        finally:
            with self._lock:
                self._inflight.pop(name, None)

    def rebuild_all(self, force: bool = False) -> Dict[str, RebuildOutcome]:
        """
        Rebuild every registered collection in registration order.

        A collection whose sources went missing keeps serving its committed
        generation: its outcome carries the error and its state is failed.

        Raises:
            SourceNotFoundError: a never-built collection has no sources
                (raised after every other collection was attempted)
        """
        outcomes: Dict[str, RebuildOutcome] = {}
        missing: Optional[SourceNotFoundError] = None
        for name in self.registry.names():
            try:
                outcomes[name] = self.rebuild(name, force=force)
            except SourceNotFoundError as e:
                entry = self.store.manifest_entry(name)
                if entry is None:
                    missing = missing or e
                    continue
                self.logger.warning(
                    f"Sources of '{name}' are missing; still serving generation {entry.generation_id}"
                )
                outcomes[name] = RebuildOutcome(collection=name, rebuilt=False, manifest=entry, error=e)
        if missing is not None:
            raise missing
        return outcomes

    def refresh(self) -> Dict[str, RebuildOutcome]:
        """
        Rebuild only the collections whose sources changed.

        Up-to-date collections are left out of the result. Missing sources
        are handled as in rebuild_all().
        """
        return {
            name: outcome
            for name, outcome in self.rebuild_all().items()
            if not outcome.skipped
        }

    def _run(
        self,
        definition: CollectionDefinition,
        force: bool,
        token: CancellationToken,
    ) -> RebuildOutcome:
        name = definition.name
        self._transition(name, RebuildState.SCANNING)
        previous = None
        try:
            previous = self.store.manifest_entry(name)
            fingerprint = self.pipeline.scan(definition)
            if not force and previous is not None and previous.fingerprint == fingerprint:
                self._transition(name, RebuildState.IDLE)
                self.logger.info(f"'{name}' is up to date ({previous.generation_id})")
                return RebuildOutcome(collection=name, rebuilt=False, manifest=previous)

            token.raise_if_cancelled(name)
            self._transition(name, RebuildState.VALIDATING)
            result = self.pipeline.ingest(definition, cancel=token)

            if not token.commit():
                raise RebuildCancelled(name)
            self._transition(name, RebuildState.SWAPPING)
            entry = self.store.upsert_generation(name, result.records, result.fingerprint)
        except RebuildCancelled:
            self._transition(name, RebuildState.IDLE)
            self.logger.info(f"Rebuild of '{name}' cancelled; generation unchanged")
            return RebuildOutcome(collection=name, rebuilt=False, cancelled=True, manifest=previous)
        except Exception as e:
            self._transition(name, RebuildState.FAILED)
            self.logger.error(f"Rebuild of '{name}' failed: {type(e).__name__}: {e}")
            raise

        self._transition(name, RebuildState.IDLE)
        self.logger.info(
            f"Rebuilt '{name}': generation {entry.generation_id}, "
            f"{entry.record_count} records, {len(result.report.errors)} errors"
        )
        return RebuildOutcome(collection=name, rebuilt=True, manifest=entry, report=result.report)
