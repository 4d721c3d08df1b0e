"""
Debounced auto-save with optimistic state.

Edits are coalesced per (section_id, field_path): each new edit cancels the
pending timer for that key and schedules a fresh one, so only the last value
in the debounce window is persisted. ``save_now`` and ``flush`` bypass the
debounce (blur / explicit save).

Each section keeps two channels: ``confirmed`` (last data the store accepted)
and ``pending`` (edits not yet confirmed). Readers see pending merged over
confirmed. When a flush fails after its retries, the pending edit is dropped,
the confirmed value shows through again, and the error is surfaced to the
caller (explicit flush) or recorded as a REVERTED signal (timer flush).

At most ``max_idle_sections`` sections without pending edits stay in memory,
least recently used evicted first; readers ``load`` from the store again.
Per-field locks live only while a flush holds or waits on them.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exceptions import ConcurrencyConflictError, WorkflowError
from services.access_control import ActorContext
from services.section_tracker import update_field
from utils.field_paths import get_path, set_path

logger = logging.getLogger(__name__)

Key = tuple[str, str]

# persist(section_id, field_path, value, actor, expected_version) -> confirmed section data
PersistFn = Callable[[str, str, Any, ActorContext, Optional[int]], Awaitable[dict[str, Any]]]

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (ConcurrencyConflictError, SQLAlchemyError, OSError)


class SaveState(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"


@dataclass
class SaveSignal:
    section_id: str
    field_path: str
    state: SaveState
    value: Any = None
    attempts: int = 0
    error: Optional[WorkflowError] = None

    def to_dict(self) -> dict[str, Any]:
        out = {
            "sectionId": self.section_id,
            "fieldPath": self.field_path,
            "state": self.state.value,
            "value": self.value,
            "attempts": self.attempts,
        }
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out


@dataclass
class PendingEdit:
    value: Any
    actor: ActorContext
    generation: int
    expected_version: Optional[int] = None


@dataclass
class OptimisticState:
    """Confirmed data plus pending edits and the latest signal, keyed by field path."""

    confirmed: dict[str, Any] = field(default_factory=dict)
    pending: dict[str, PendingEdit] = field(default_factory=dict)
    signals: dict[str, SaveSignal] = field(default_factory=dict)

    def view(self) -> dict[str, Any]:
        merged = self.confirmed
        for path, edit in self.pending.items():
            merged = set_path(merged, path, edit.value)
        return merged

    def stage(self, path: str, edit: PendingEdit) -> None:
        self.pending[path] = edit

    def confirm(self, path: str, generation: int, data: dict[str, Any]) -> None:
        # Only the flushed path is taken from ``data``; other paths may already
        # hold values newer than this snapshot.
        self.confirmed = set_path(self.confirmed, path, get_path(data, path))
        edit = self.pending.get(path)
        if edit is not None and edit.generation == generation:
            del self.pending[path]

    def revert(self, path: str, generation: int) -> None:
        edit = self.pending.get(path)
        if edit is not None and edit.generation == generation:
            del self.pending[path]


class AutoSaveCoordinator:
    def __init__(
        self,
        persist: PersistFn,
        debounce_seconds: float = 0.8,
        max_retries: int = 3,
        backoff_seconds: float = 0.2,
        on_signal: Optional[Callable[[SaveSignal], None]] = None,
        max_idle_sections: int = 1024,
    ) -> None:
        self.persist = persist
        self.debounce_seconds = debounce_seconds
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self.on_signal = on_signal
        self.max_idle_sections = max(0, max_idle_sections)
        # Least recently used first
        self._states: OrderedDict[str, OptimisticState] = OrderedDict()
        self._queued: dict[Key, PendingEdit] = {}
        self._timers: dict[Key, asyncio.Task] = {}
        self._locks: dict[Key, asyncio.Lock] = {}
        # Flushes holding or waiting on each lock; the lock is dropped at zero
        self._lock_users: dict[Key, int] = {}
        self._generation = 0

    # -- optimistic channel -------------------------------------------------

    def load(self, section_id: str, data: dict[str, Any]) -> None:
        """Replace the confirmed channel with data read from the store; pending edits are kept."""
        self._state(section_id).confirmed = dict(data or {})
        self._evict_idle(keep=section_id)

    def view(self, section_id: str) -> dict[str, Any]:
        state = self._states.get(section_id)
        return state.view() if state else {}

    def pending_fields(self, section_id: str) -> list[str]:
        state = self._states.get(section_id)
        return sorted(state.pending) if state else []

    def last_signal(self, section_id: str, field_path: str) -> Optional[SaveSignal]:
        state = self._states.get(section_id)
        return state.signals.get(field_path) if state else None

    def signals_for(self, section_id: str) -> list[SaveSignal]:
        state = self._states.get(section_id)
        return [state.signals[path] for path in sorted(state.signals)] if state else []

    def tracked_sections(self) -> list[str]:
        return list(self._states)

    # -- edits ----------------------------------------------------------------

    def edit(
        self,
        section_id: str,
        field_path: str,
        value: Any,
        actor: ActorContext,
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        """Typing event: stage optimistically, (re)start the debounce timer, return the merged view."""
        key = (section_id, field_path)
        pending = self._stage(key, value, actor, expected_version)
        self._cancel_timer(key)
        self._timers[key] = asyncio.create_task(self._debounced_flush(key, pending.generation))
        self._record(SaveSignal(section_id, field_path, SaveState.PENDING, value=pending.value))
        return self.view(section_id)

    async def save_now(
        self,
        section_id: str,
        field_path: str,
        value: Any,
        actor: ActorContext,
        expected_version: Optional[int] = None,
    ) -> SaveSignal:
        """Blur / explicit save of a value: supersedes any pending debounce for the field."""
        key = (section_id, field_path)
        self._stage(key, value, actor, expected_version)
        self._cancel_timer(key)
        return await self._flush_key(key, raise_errors=True)

    async def flush(self, section_id: str, field_path: Optional[str] = None) -> list[SaveSignal]:
        """Persist queued edits for a section (or one field) now. Raises the first failure after all are tried."""
        in_flight = list(self._lock_users)
        keys = [
            k for k in dict.fromkeys([*self._queued, *in_flight])
            if k[0] == section_id and (field_path is None or k[1] == field_path)
        ]
        signals: list[SaveSignal] = []
        first_error: Optional[WorkflowError] = None
        for key in keys:
            self._cancel_timer(key)
            signal = await self._flush_key(key, raise_errors=False)
            signals.append(signal)
            if signal.error is not None and first_error is None:
                first_error = signal.error
        if first_error is not None:
            raise first_error
        return signals

    async def flush_all(self) -> list[SaveSignal]:
        signals: list[SaveSignal] = []
        for key in list(self._queued):
            self._cancel_timer(key)
            signals.append(await self._flush_key(key, raise_errors=False))
        return signals

    async def drain(self) -> None:
        """Wait for every scheduled timer flush to finish."""
        while self._timers:
            await asyncio.gather(*list(self._timers.values()))

    async def aclose(self) -> None:
        await self.flush_all()
        for key in list(self._timers):
            self._cancel_timer(key)

    # -- internals --------------------------------------------------------------

    def _state(self, section_id: str) -> OptimisticState:
        state = self._states.get(section_id)
        if state is None:
            state = self._states[section_id] = OptimisticState()
        else:
            self._states.move_to_end(section_id)
        return state

    def _evict_idle(self, keep: Optional[str] = None) -> None:
        """Drop the least recently used sections with no pending edits until under the cap."""
        excess = len(self._states) - self.max_idle_sections
        if excess <= 0:
            return
        busy = {sid for sid, _ in self._lock_users}
        for section_id in list(self._states):
            if excess <= 0:
                break
            if section_id == keep or section_id in busy or self._states[section_id].pending:
                continue
            del self._states[section_id]
            excess -= 1

    def _stage(
        self,
        key: Key,
        value: Any,
        actor: ActorContext,
        expected_version: Optional[int],
    ) -> PendingEdit:
        self._generation += 1
        pending = PendingEdit(value=value, actor=actor, generation=self._generation, expected_version=expected_version)
        self._queued[key] = pending
        self._state(key[0]).stage(key[1], pending)
        return pending

    def _cancel_timer(self, key: Key) -> None:
        task = self._timers.pop(key, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _debounced_flush(self, key: Key, generation: int) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        queued = self._queued.get(key)
        if queued is not None and queued.generation == generation:
            await self._flush_key(key, raise_errors=False)

    async def _flush_key(self, key: Key, raise_errors: bool) -> SaveSignal:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._flush_locked(key, raise_errors)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]
            self._evict_idle()

    async def _flush_locked(self, key: Key, raise_errors: bool) -> SaveSignal:
        section_id, field_path = key
        pending = self._queued.pop(key, None)
        if pending is None:
            return self.last_signal(section_id, field_path) or SaveSignal(section_id, field_path, SaveState.CONFIRMED)

        error: Optional[WorkflowError] = None
        unexpected: Optional[Exception] = None
        attempts = 0
        for attempt in range(self.max_retries):
            attempts = attempt + 1
            try:
                data = await self.persist(
                    section_id, field_path, pending.value, pending.actor, pending.expected_version
                )
            except RETRYABLE_ERRORS as exc:
                error = _as_workflow_error(exc, field_path)
                if pending.expected_version is not None and isinstance(exc, ConcurrencyConflictError):
                    break
                logger.warning(
                    "Auto-save of %s/%s failed (attempt %d/%d): %s",
                    section_id, field_path, attempts, self.max_retries, error.message,
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.backoff_seconds * (2 ** attempt))
                continue
            except WorkflowError as exc:
                error = exc
                break
            except Exception as exc:
                unexpected = exc
                error = WorkflowError(f"Could not save {field_path}")
                error.__cause__ = exc
                break
            self._state(section_id).confirm(field_path, pending.generation, data)
            signal = SaveSignal(section_id, field_path, SaveState.CONFIRMED, value=pending.value, attempts=attempts)
            self._record(signal)
            return signal

        self._state(section_id).revert(field_path, pending.generation)
        logger.error(
            "Auto-save of %s/%s reverted after %d attempt(s): %s",
            section_id, field_path, attempts, error.message,
            exc_info=unexpected,
        )
        signal = SaveSignal(
            section_id, field_path, SaveState.REVERTED, value=pending.value, attempts=attempts, error=error
        )
        self._record(signal)
        if raise_errors:
            raise error
        return signal

    def _record(self, signal: SaveSignal) -> None:
        self._state(signal.section_id).signals[signal.field_path] = signal
        if self.on_signal is not None:
            self.on_signal(signal)


def _as_workflow_error(exc: BaseException, field_path: str) -> WorkflowError:
    if isinstance(exc, WorkflowError):
        return exc
    err = ConcurrencyConflictError(f"Could not save {field_path}: {exc}")
    err.__cause__ = exc
    return err


def store_persister(sessionmaker: async_sessionmaker[AsyncSession]) -> PersistFn:
    """Persist through section_tracker.update_field, one transaction per flush."""

    async def persist(
        section_id: str,
        field_path: str,
        value: Any,
        actor: ActorContext,
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        async with sessionmaker() as session:
            try:
                section = await update_field(session, section_id, field_path, value, actor, expected_version)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return dict(section.data or {})

    return persist
