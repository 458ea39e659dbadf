"""Hook slot naming.

A hook is a stage function ``(ctx) -> None | Response`` (sync or async)
attached to one slot of one (model, action):

    before<Action>      runs before the core handler; may short-circuit
    after<Action>       runs after the core handler; may replace status/body
    on<Action>Error     runs when any stage raises; may return a response

Hook modules may spell names in snake case (``before_find_many``).
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from crudforge.core.naming import camel_case, capitalize

HookFn = Callable[[Any], Any]


class HookSlot(Enum):
    BEFORE = "before"
    AFTER = "after"
    ON_ERROR = "onError"

    def hook_name(self, action: str) -> str:
        if self is HookSlot.ON_ERROR:
            return f"on{capitalize(action)}Error"
        return f"{self.value}{capitalize(action)}"


@dataclass(frozen=True)
class HookKey:
    model: str
    action: str
    slot: HookSlot


_HOOK_NAME = re.compile(r"^(?:(before|after)([A-Z]\w*)|on([A-Z]\w*)Error)$")


def parse_hook_name(name: str) -> tuple[HookSlot, str] | None:
    """Split ``beforeFindMany`` / ``on_create_one_error`` into (slot, action).

    Returns None for names that are not hook names.
    """
    match = _HOOK_NAME.match(camel_case(name))
    if match is None:
        return None
    before_after, action, error_action = match.groups()
    if error_action:
        return HookSlot.ON_ERROR, error_action[:1].lower() + error_action[1:]
    return HookSlot(before_after), action[:1].lower() + action[1:]


def hook(model: str, name: str) -> Callable[[HookFn], HookFn]:
    """Mark a function as a hook for *model*.

    Discovery picks marked functions up from hook modules, and
    ``ComponentRegistry.register_module_hooks`` from any module.

    Usage:
        @hook("Post", "afterFindMany")
        async def hide_drafts(ctx):
            ...
    """
    parsed = parse_hook_name(name)
    if parsed is None:
        raise ValueError(
            f"'{name}' is not a hook name; expected before<Action>, "
            "after<Action> or on<Action>Error"
        )

    def decorator(fn: HookFn) -> HookFn:
        fn.__crudforge_hook__ = (model, name)
        return fn

    return decorator
