"""
Per-section field storage: dotted-path merge, completion counting, the
completion gate, and the field-update / complete / review-stamp operations.

Completion is filled observed leaves over all observed leaves. The observed
set is the union of every leaf path the section has ever held, so it only
grows and completion is stable for a given schema. A path drops out only when
its shape changes: a leaf that became a map, or a leaf under a map that was
replaced by a scalar.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import ConcurrencyConflictError, ValidationError
from models import Section
from schemas.enums import ApplicationStatus, SectionStatus
from services import application_store as store
from services.access_control import ActorContext, Capability, require_reviewer, require_section_write
from utils.field_paths import flatten_leaves, is_filled, round_half_up, set_path, split_path

logger = logging.getLogger(__name__)

# Section data may change only while the issuer side holds the application.
EDITABLE_STATUSES = frozenset({
    ApplicationStatus.DRAFT.value,
    ApplicationStatus.QUERY_ISSUED.value,
})


@dataclass
class SectionChanges:
    """Column values to write back after a field update."""

    data: dict[str, Any]
    observed_fields: list[str]
    completion_percentage: int
    status: str
    validation_errors: list[dict[str, Any]] = field(default_factory=list)
    reopened: bool = False

    def as_values(self) -> dict[str, Any]:
        values = {
            "data": self.data,
            "observed_fields": self.observed_fields,
            "completion_percentage": self.completion_percentage,
            "status": self.status,
            "validation_errors": self.validation_errors,
        }
        if self.reopened:
            values["completed_by"] = None
            values["completed_at"] = None
        return values


def _reshaped(data: dict[str, Any], path: str) -> bool:
    """True when ``path`` no longer names a leaf slot in ``data``."""
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return True
        if key not in current:
            return False
        current = current[key]
    return isinstance(current, dict)


def merge_observed(observed: Iterable[str], data: dict[str, Any]) -> list[str]:
    """Union of previously observed leaf paths and the leaves present now, in first-seen order."""
    out = [path for path in (observed or []) if not _reshaped(data, path)]
    seen = set(out)
    for path in flatten_leaves(data):
        if path not in seen:
            seen.add(path)
            out.append(path)
    return out


def compute_completion(data: dict[str, Any], observed_fields: Iterable[str]) -> int:
    observed = list(observed_fields)
    if not observed:
        return 0
    flat = flatten_leaves(data)
    filled = sum(1 for path in observed if is_filled(flat.get(path)))
    return round_half_up(filled * 100 / len(observed))


def empty_field_errors(data: dict[str, Any], observed_fields: Iterable[str]) -> list[dict[str, Any]]:
    flat = flatten_leaves(data)
    return [
        {"field": path, "message": "Value is required", "code": "EMPTY"}
        for path in observed_fields
        if not is_filled(flat.get(path))
    ]


def status_for(completion: int) -> str:
    return SectionStatus.IN_PROGRESS.value if completion > 0 else SectionStatus.NOT_STARTED.value


def apply_field_update(section: Any, field_path: str, value: Any) -> SectionChanges:
    data = set_path(section.data or {}, field_path, value)
    observed = merge_observed(section.observed_fields or [], data)
    completion = compute_completion(data, observed)
    return SectionChanges(
        data=data,
        observed_fields=observed,
        completion_percentage=completion,
        status=status_for(completion),
        validation_errors=empty_field_errors(data, observed),
        reopened=section.status == SectionStatus.COMPLETED.value,
    )


def require_editable(application: Any) -> None:
    if application.status not in EDITABLE_STATUSES:
        raise ValidationError(f"Sections are locked while the application is {application.status}")


def check_completable(section: Any, threshold: int) -> None:
    if not section.data or not flatten_leaves(section.data):
        raise ValidationError("Cannot complete empty section")
    if section.completion_percentage < threshold:
        raise ValidationError(
            f"Cannot complete section below {threshold}% completion "
            f"(currently {section.completion_percentage}%)",
            errors=list(section.validation_errors or []),
        )


async def update_field(
    session: AsyncSession,
    section_id: str,
    field_path: str,
    value: Any,
    actor: ActorContext,
    expected_version: Optional[int] = None,
) -> Section:
    """
    Merge ``value`` at ``field_path`` into the section's data and recompute
    completion for the section and its application.

    The merge is scoped to one path: when another writer commits first, the
    row is re-read and the merge re-applied, so edits to different paths never
    overwrite each other. A caller-supplied ``expected_version`` that is already
    stale is rejected outright.
    """
    split_path(field_path)
    section = await store.get_section_by_id(session, section_id)
    application = await store.get_application(session, section.application_id)
    require_section_write(actor, application)
    require_editable(application)

    if expected_version is not None and section.version != expected_version:
        raise ConcurrencyConflictError(
            f"Section {section.id} was modified (expected version {expected_version}, found {section.version})",
            current_version=section.version,
        )

    attempts = max(1, settings.field_merge_retries)
    for attempt in range(attempts):
        changes = apply_field_update(section, field_path, value)
        try:
            await store.compare_and_set(session, Section, section.id, section.version, changes.as_values())
        except ConcurrencyConflictError:
            logger.warning(
                "Section %s: merge of %s lost a race (attempt %d/%d)",
                section.id, field_path, attempt + 1, attempts,
            )
            section = await store.get_section_by_id(session, section.id, fresh=True)
            continue
        await store.recompute_completion(session, section.application_id)
        return await store.get_section_by_id(session, section.id, fresh=True)

    raise ConcurrencyConflictError(
        f"Section {section.id} is being modified concurrently; retry later",
        current_version=section.version,
    )


async def complete_section(
    session: AsyncSession,
    section_id: str,
    actor: ActorContext,
    expected_version: Optional[int] = None,
    threshold: Optional[int] = None,
) -> Section:
    section = await store.get_section_by_id(session, section_id)
    application = await store.get_application(session, section.application_id)
    require_section_write(actor, application)
    require_editable(application)
    check_completable(section, settings.section_completion_threshold if threshold is None else threshold)

    version = section.version if expected_version is None else expected_version
    await store.compare_and_set(
        session,
        Section,
        section.id,
        version,
        {
            "status": SectionStatus.COMPLETED.value,
            "completed_by": actor.user_id,
            "completed_at": store.utcnow(),
        },
    )
    logger.info("Section %s (%d) completed by %s", section.id, section.section_number, actor.user_id)
    return await store.get_section_by_id(session, section.id, fresh=True)


async def mark_reviewed(
    session: AsyncSession,
    section_id: str,
    actor: ActorContext,
    expected_version: Optional[int] = None,
) -> Section:
    """Stamp reviewed_by/reviewed_at. Does not change the section status."""
    section = await store.get_section_by_id(session, section_id)
    application = await store.get_application(session, section.application_id)
    require_reviewer(actor, application, Capability.REVIEW_SECTIONS)

    version = section.version if expected_version is None else expected_version
    await store.compare_and_set(
        session, Section, section.id, version,
        {"reviewed_by": actor.user_id, "reviewed_at": store.utcnow()},
    )
    return await store.get_section_by_id(session, section.id, fresh=True)
