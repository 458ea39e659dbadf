"""Static role-based access control.

A model may declare an access-control table in its metadata, either as one
role list for every action or per access action::

    auth:
      accessControl: [Admin]                 # every action
    auth:
      accessControl:
        view: [Admin, Editor, Viewer]
        create: [Admin, Editor]

Without a table the access gate is a no-op. With one, an identity passes when
it is a super user or one of its roles is allowed for the action. Actions the
table does not mention are allowed only when listed in the global
``publicActions`` config (``"view"`` or ``"Post.view"``).
"""

from __future__ import annotations

from typing import Any

from crudforge.core.naming import capitalize
from crudforge.errors import ConflictWarning
from crudforge.metadata.loader import AuthPolicy, MetadataLoader

ACCESS_ACTIONS = ("create", "view", "update", "delete")

# Route action -> access action
ACCESS_ACTION_FOR = {
    "createOne": "create",
    "createMany": "create",
    "findMany": "view",
    "findOne": "view",
    "updateOne": "update",
    "updateMany": "update",
    "deleteOne": "delete",
    "deleteMany": "delete",
    "findFile": "view",
    "uploadFile": "create",
    "updateFile": "update",
    "deleteFile": "delete",
}


def allowed_roles(policy: AuthPolicy, access_action: str) -> frozenset[str] | None:
    """Roles allowed for *access_action*, or None when there is no entry."""
    table = policy.access_control
    if table is None:
        return None
    if isinstance(table, list):
        return frozenset(table)
    roles = table.get(access_action, table.get(capitalize(access_action)))
    return None if roles is None else frozenset(roles)


def is_public(model: str, access_action: str, public_actions: list[str]) -> bool:
    return access_action in public_actions or f"{model}.{access_action}" in public_actions


def is_allowed(
    identity: Any,
    model: str,
    policy: AuthPolicy,
    access_action: str,
    public_actions: list[str],
) -> bool:
    """Whether *identity* may perform *access_action* on *model*."""
    if policy.access_control is None:
        return True
    if identity.is_super_user:
        return True
    roles = allowed_roles(policy, access_action)
    if roles is None:
        return is_public(model, access_action, public_actions)
    return bool(identity.roles & roles)


def permission_table(loader: MetadataLoader) -> dict[str, dict[str, list[str]]]:
    """The declared access-control tables, expanded per access action."""
    table: dict[str, dict[str, list[str]]] = {}
    for name in sorted(loader.models):
        policy = loader.models[name].auth
        if policy.access_control is None:
            continue
        entries = {}
        for action in ACCESS_ACTIONS:
            roles = allowed_roles(policy, action)
            if roles is not None:
                entries[action] = sorted(roles)
        table[name] = entries
    return table


def diff_permissions(
    previous: dict[str, dict[str, list[str]]],
    proposed: dict[str, dict[str, list[str]]],
) -> list[ConflictWarning]:
    """Changes to role sets that were already stored.

    New resources and new actions are not conflicts; a different (or
    removed) role set for an existing (resource, action) is.
    """
    warnings = []
    for resource, actions in proposed.items():
        stored = previous.get(resource) or {}
        for action in ACCESS_ACTIONS:
            if action not in stored:
                continue
            before = tuple(sorted(stored[action] or ()))
            after = tuple(sorted(actions.get(action, ())))
            if before != after:
                warnings.append(ConflictWarning(resource, action, before, after))
    return warnings
