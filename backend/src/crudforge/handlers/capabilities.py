"""Capability protocols implemented by resources.

A resource is composed from the capabilities it supports instead of
inheriting from a base controller. The composer asks each resource for the
handler of an action through :data:`ACTION_HANDLERS`.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Creatable(Protocol):
    async def create_one(self, ctx: Any) -> None: ...

    async def create_many(self, ctx: Any) -> None: ...


@runtime_checkable
class Findable(Protocol):
    async def find_many(self, ctx: Any) -> None: ...

    async def find_one(self, ctx: Any) -> None: ...


@runtime_checkable
class Updatable(Protocol):
    async def update_one(self, ctx: Any) -> None: ...

    async def update_many(self, ctx: Any) -> None: ...


@runtime_checkable
class Deletable(Protocol):
    async def delete_one(self, ctx: Any) -> None: ...

    async def delete_many(self, ctx: Any) -> None: ...


@runtime_checkable
class AuthActions(Protocol):
    async def get_me(self, ctx: Any) -> None: ...

    async def update_me(self, ctx: Any) -> None: ...

    async def delete_me(self, ctx: Any) -> None: ...

    async def login(self, ctx: Any) -> None: ...

    async def logout(self, ctx: Any) -> None: ...

    async def signup(self, ctx: Any) -> None: ...

    async def update_password(self, ctx: Any) -> None: ...


@runtime_checkable
class FileActions(Protocol):
    async def find_file(self, ctx: Any) -> None: ...

    async def upload_file(self, ctx: Any) -> None: ...

    async def update_file(self, ctx: Any) -> None: ...

    async def delete_file(self, ctx: Any) -> None: ...


# Action -> (capability, handler method)
ACTION_HANDLERS = {
    "createOne": (Creatable, "create_one"),
    "createMany": (Creatable, "create_many"),
    "findMany": (Findable, "find_many"),
    "findOne": (Findable, "find_one"),
    "updateOne": (Updatable, "update_one"),
    "updateMany": (Updatable, "update_many"),
    "deleteOne": (Deletable, "delete_one"),
    "deleteMany": (Deletable, "delete_many"),
    "getMe": (AuthActions, "get_me"),
    "updateMe": (AuthActions, "update_me"),
    "deleteMe": (AuthActions, "delete_me"),
    "login": (AuthActions, "login"),
    "logout": (AuthActions, "logout"),
    "signup": (AuthActions, "signup"),
    "updatePassword": (AuthActions, "update_password"),
    "findFile": (FileActions, "find_file"),
    "uploadFile": (FileActions, "upload_file"),
    "updateFile": (FileActions, "update_file"),
    "deleteFile": (FileActions, "delete_file"),
}


def handler_for(resource: Any, action: str):
    """The bound handler for *action*, or None if *resource* lacks the capability."""
    capability, method = ACTION_HANDLERS[action]
    if not isinstance(resource, capability):
        return None
    return getattr(resource, method)
