"""Type definitions for authentication."""

from dataclasses import dataclass, field
from typing import Any

from crudforge.metadata.loader import ALWAYS_HIDDEN_FIELDS


@dataclass
class TokenClaims:
    """Claims embedded in an access token.

    Attributes:
        user_id: Primary key of the authenticated record
        exp: Token expiration timestamp
        iat: Token issued-at timestamp
    """

    user_id: str
    exp: int = 0
    iat: int = 0


def _role_names(record: dict[str, Any]) -> frozenset[str]:
    roles = record.get("roles")
    if roles is None:
        roles = [record["role"]] if record.get("role") else []
    elif isinstance(roles, str):
        roles = [roles]

    names = set()
    for role in roles:
        if isinstance(role, dict):
            role = role.get("name") or role.get("role")
        if role:
            names.add(str(role))
    return frozenset(names)


@dataclass(frozen=True)
class Identity:
    """The authenticated actor attached to a request.

    Attributes:
        id: Primary key of the user record
        roles: Role names used by access control
        is_super_user: Bypasses every access-control table
        is_verified: False while a required verification is pending
        is_active: False for deactivated or self-deleted accounts
        record: The user record without hidden fields
    """

    id: Any
    roles: frozenset[str] = frozenset()
    is_super_user: bool = False
    is_verified: bool = True
    is_active: bool = True
    record: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        primary_key: str = "id",
        hidden_fields: tuple[str, ...] = ALWAYS_HIDDEN_FIELDS,
    ) -> "Identity":
        public = {k: v for k, v in record.items() if k not in hidden_fields}
        return cls(
            id=record[primary_key],
            roles=_role_names(record),
            is_super_user=bool(record.get("isSuperUser", False)),
            is_verified=record.get("isVerified") is not False,
            is_active=record.get("isActive") is not False
            and not record.get("deletedSelfAccountAt"),
            record=public,
        )
