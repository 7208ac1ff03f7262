"""
Workflow transition tables and the optimistic status guard.

Each table maps (current status, action) to the resulting status. A pair
missing from the table is an illegal transition. A `None` target means the
action removes the record.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from enum import Enum
from typing import Optional, TypeVar

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from gtcflow.core.exceptions import ConflictError
from gtcflow.schemas.common import (
    ConventionAction,
    ConventionStatus,
    OnboardingAction,
    OnboardingStatus,
)

S = TypeVar("S", bound=Enum)
A = TypeVar("A", bound=Enum)

CONVENTION_TRANSITIONS: dict[tuple[ConventionStatus, ConventionAction], Optional[ConventionStatus]] = {
    (ConventionStatus.NEW, ConventionAction.UPLOAD): ConventionStatus.UPLOADED,
    # Additional documents may be attached until a decision is made
    (ConventionStatus.UPLOADED, ConventionAction.UPLOAD): ConventionStatus.UPLOADED,
    (ConventionStatus.NEW, ConventionAction.APPROVE): ConventionStatus.APPROVED,
    (ConventionStatus.UPLOADED, ConventionAction.APPROVE): ConventionStatus.APPROVED,
    (ConventionStatus.NEW, ConventionAction.DECLINE): ConventionStatus.DECLINED,
    (ConventionStatus.UPLOADED, ConventionAction.DECLINE): ConventionStatus.DECLINED,
    (ConventionStatus.NEW, ConventionAction.DELETE): None,
}

ONBOARDING_TRANSITIONS: dict[tuple[OnboardingStatus, OnboardingAction], Optional[OnboardingStatus]] = {
    (OnboardingStatus.DRAFT, OnboardingAction.SUBMIT): OnboardingStatus.SUBMITTED,
    (OnboardingStatus.SUBMITTED, OnboardingAction.APPROVE): OnboardingStatus.APPROVED,
    (OnboardingStatus.SUBMITTED, OnboardingAction.DECLINE): OnboardingStatus.DECLINED,
    (OnboardingStatus.APPROVED, OnboardingAction.COMPLETE): OnboardingStatus.COMPLETED,
}


def is_allowed(table: dict[tuple[S, A], Optional[S]], state: S, action: A) -> bool:
    return (state, action) in table


def next_status(table: dict[tuple[S, A], Optional[S]], state: S, action: A) -> Optional[S]:
    """Resulting status for `action` from `state`. Raises ConflictError if illegal."""
    if (state, action) not in table:
        raise ConflictError(f"Cannot {action.value.lower()} in state '{state.value}'")
    return table[(state, action)]


def sources_for(table: dict[tuple[S, A], Optional[S]], action: A) -> set[S]:
    """All states from which `action` is legal."""
    return {state for (state, a) in table if a == action}


def _value(status: Enum | str) -> str:
    return status.value if isinstance(status, Enum) else status


async def guarded_status_update(
    session: AsyncSession,
    model: type,
    entity_id: uuid.UUID,
    expected: Iterable[Enum | str],
    target: Enum | str,
    **values,
) -> None:
    """Set `status = target` only if the row is still in one of `expected`.

    Two racing transitions from the same state cannot both succeed: the loser
    matches zero rows and gets ConflictError.
    """
    result = await session.execute(
        update(model)
        .where(model.id == entity_id, model.status.in_([_value(e) for e in expected]))
        .values(status=_value(target), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"{model.__name__} is no longer in an expected state")
