"""
identity_gateway.auth.roles

Mapping of external identity claims to canonical internal roles.

Responsibilities:
- Normalize role / group / custom-role / email claims into a stable, de-duplicated
  role list through an ordered list of matcher rules.
- Guarantee every identity ends up with at least the baseline role.

The mapper is a pure function: no I/O, no logging, no configuration reads. Callers
pass in any deployment-specific knobs (admin email domains).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

ROLE_ADMIN = "Admin"
ROLE_SALES = "Sales"
ROLE_CUSTOMER_SERVICE = "CustomerService"
ROLE_USER = "User"

BASELINE_ROLE = ROLE_USER
ALL_ROLES: tuple[str, ...] = (ROLE_ADMIN, ROLE_SALES, ROLE_CUSTOMER_SERVICE, ROLE_USER)

_ROLE_ALIASES: dict[str, str] = {
    "administrator": ROLE_ADMIN,
    "admin": ROLE_ADMIN,
    "global_admin": ROLE_ADMIN,
    "sales": ROLE_SALES,
    "sales_manager": ROLE_SALES,
    "sales_rep": ROLE_SALES,
    "support": ROLE_CUSTOMER_SERVICE,
    "customer_service": ROLE_CUSTOMER_SERVICE,
    "helpdesk": ROLE_CUSTOMER_SERVICE,
    "user": ROLE_USER,
    "member": ROLE_USER,
}

# Ordered: first matching fragment wins.
_GROUP_FRAGMENTS: tuple[tuple[str, str], ...] = (
    ("admin", ROLE_ADMIN),
    ("sales", ROLE_SALES),
    ("support", ROLE_CUSTOMER_SERVICE),
)

_ROLE_CLAIM_TYPES = frozenset({"role", "roles"})
_GROUP_CLAIM_TYPES = frozenset({"groups", "group"})
_APP_ROLE_CLAIM_TYPES = frozenset({"extension_app_role", "app_role"})
_EMAIL_CLAIM_TYPES = frozenset({"email", "emails"})

Claim = tuple[str, str]


@dataclass(frozen=True, slots=True)
class RoleRule:
    """
    One matcher rule. `claim_types` selects the claims it looks at; `resolve` maps a
    claim value to a role (or None). Rules with `fallback_only` run only when no
    earlier rule produced a role.
    """

    name: str
    claim_types: frozenset[str]
    resolve: Callable[[str], str | None]
    fallback_only: bool = False


def normalize_role(value: str) -> str:
    # Unrecognized values collapse to the baseline role instead of being dropped.
    return _ROLE_ALIASES.get(value.strip().lower(), BASELINE_ROLE)


def role_for_group(group: str) -> str | None:
    lowered = group.lower()
    for fragment, role in _GROUP_FRAGMENTS:
        if fragment in lowered:
            return role
    return None


def _email_resolver(admin_domains: Sequence[str]) -> Callable[[str], str | None]:
    domains = tuple(d.lower().lstrip("@") for d in admin_domains)

    def resolve(email: str) -> str | None:
        lowered = email.strip().lower()
        if not lowered:
            return None
        domain = lowered.rpartition("@")[2]
        if "admin" in lowered or (domains and domain in domains):
            return ROLE_ADMIN
        if "sales" in lowered:
            return ROLE_SALES
        if "support" in lowered or "service" in lowered:
            return ROLE_CUSTOMER_SERVICE
        return None

    return resolve


def _passthrough(value: str) -> str | None:
    stripped = value.strip()
    return stripped or None


def _direct_role(value: str) -> str | None:
    return normalize_role(value) if value.strip() else None


def default_rules(admin_email_domains: Sequence[str] = ()) -> tuple[RoleRule, ...]:
    return (
        RoleRule("direct-role", _ROLE_CLAIM_TYPES, _direct_role),
        RoleRule("group", _GROUP_CLAIM_TYPES, role_for_group),
        RoleRule("app-role", _APP_ROLE_CLAIM_TYPES, _passthrough),
        RoleRule("email", _EMAIL_CLAIM_TYPES, _email_resolver(admin_email_domains), fallback_only=True),
    )


def _claim_type(raw: str) -> str:
    # URI-style claim types (".../identity/claims/role") match on their last segment.
    return raw.strip().lower().rsplit("/", 1)[-1]


def claims_from_mapping(claims: Mapping[str, Any]) -> list[Claim]:
    """Flatten a JSON-style claim mapping (list values expand) into claim pairs."""
    pairs: list[Claim] = []
    for key, value in claims.items():
        if value is None:
            continue
        if isinstance(value, list | tuple | set | frozenset):
            pairs.extend((key, str(v)) for v in value if v is not None)
        else:
            pairs.append((key, str(value)))
    return pairs


def map_claims_to_roles(
    claims: Iterable[Claim] | Mapping[str, Any],
    *,
    rules: Sequence[RoleRule] | None = None,
    admin_email_domains: Sequence[str] = (),
) -> list[str]:
    """
    Map external claims to a de-duplicated role list in first-seen order.
    An empty claim set yields exactly the baseline role.
    """

    pairs = claims_from_mapping(claims) if isinstance(claims, Mapping) else list(claims)
    active_rules = rules if rules is not None else default_rules(admin_email_domains)

    roles: list[str] = []
    for rule in active_rules:
        if rule.fallback_only and roles:
            continue
        for claim_type, value in pairs:
            if _claim_type(claim_type) not in rule.claim_types:
                continue
            role = rule.resolve(value)
            if role and role not in roles:
                roles.append(role)

    if not roles:
        roles.append(BASELINE_ROLE)
    return roles


# --- Module Notes -----------------------------------------------------------
# Adding a new signal means appending a RoleRule; the mapping loop never changes.
