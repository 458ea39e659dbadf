"""Hook slots for generated pipelines."""

from crudforge.hooks.types import HookKey, HookSlot, hook, parse_hook_name

__all__ = ["HookKey", "HookSlot", "hook", "parse_hook_name"]
