"""Role checks.

`authorize` is the single pure predicate; `require_role` wraps it for
service code that needs to raise.
"""

from __future__ import annotations

from collections.abc import Iterable

from gtcflow.core.exceptions import AuthorizationError
from gtcflow.schemas.common import Role


def authorize(required: Iterable[Role], actual: Role | str | None) -> bool:
    """Return True when `actual` is one of the `required` roles."""
    if actual is None:
        return False
    try:
        role = Role(actual)
    except ValueError:
        return False
    return role in set(required)


def require_role(actual: Role | str | None, *required: Role) -> None:
    if not authorize(required, actual):
        allowed = ", ".join(r.value for r in required)
        raise AuthorizationError(f"Requires role: {allowed}")
