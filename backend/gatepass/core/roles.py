from __future__ import annotations

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    ADMIN = "ADMIN"
    GENERATOR = "GENERATOR"
    RECEIVER = "RECEIVER"
    SCANNER = "SCANNER"
    USER = "USER"


class Capability(str, Enum):
    GENERATE_CODES = "generate_codes"
    VALIDATE_CODES = "validate_codes"
    # Bypasses creator ownership when validating (gate staff).
    VALIDATE_ANY_CODE = "validate_any_code"
    VIEW_OWN_TICKETS = "view_own_tickets"
    ISSUE_TICKETS = "issue_tickets"
    MANAGE_EVENTS = "manage_events"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.GENERATOR: frozenset(
        {
            Capability.GENERATE_CODES,
            Capability.VALIDATE_CODES,
        }
    ),
    Role.SCANNER: frozenset(
        {
            Capability.VALIDATE_CODES,
            Capability.VALIDATE_ANY_CODE,
        }
    ),
    Role.RECEIVER: frozenset({Capability.VIEW_OWN_TICKETS}),
    Role.USER: frozenset({Capability.VIEW_OWN_TICKETS}),
}


def check_role_capabilities(mapping: dict[Role, frozenset[Capability]]) -> None:
    """Every role must declare its capabilities, even if empty."""
    missing = set(Role) - set(mapping)
    if missing:
        raise RuntimeError(f"Roles without a capability entry: {sorted(r.value for r in missing)}")


check_role_capabilities(ROLE_CAPABILITIES)


def parse_role(value: str | Role) -> Role:
    """
    Normalize user/DB input into a Role. Raises ValueError for unknown names.
    """
    if isinstance(value, Role):
        return value
    try:
        return Role((value or "").strip().upper())
    except ValueError:
        raise ValueError(f"Unknown role: {value!r}")


def parse_roles(values: Iterable[str | Role]) -> list[Role]:
    out: list[Role] = []
    for v in values:
        role = parse_role(v)
        if role not in out:
            out.append(role)
    return out


def capabilities_for(roles: Iterable[str | Role]) -> frozenset[Capability]:
    caps: set[Capability] = set()
    for role in roles:
        try:
            caps |= ROLE_CAPABILITIES[parse_role(role)]
        except ValueError:
            # Unknown role names (e.g. stale JWT snapshots) grant nothing.
            continue
    return frozenset(caps)


def has_capability(roles: Iterable[str | Role], capability: Capability) -> bool:
    return capability in capabilities_for(roles)
