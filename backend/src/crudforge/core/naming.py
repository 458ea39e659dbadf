"""Name transformations shared by routing, discovery and persistence."""

from __future__ import annotations

import re

# Irregular plurals that don't follow standard rules
_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "datum": "data",
    "medium": "media",
    "criterion": "criteria",
    "index": "indices",
    "status": "statuses",
    "address": "addresses",
}


def pluralize(word: str) -> str:
    """Convert a singular English word to its plural form.

    Examples:
        >>> pluralize("Post")
        'Posts'
        >>> pluralize("Category")
        'Categories'
        >>> pluralize("blog-entry")
        'blog-entries'
    """
    if not word:
        return word

    # Only the last segment of a compound name is pluralized
    for separator in ("-", "_"):
        if separator in word:
            head, _, tail = word.rpartition(separator)
            return f"{head}{separator}{pluralize(tail)}"

    camel_match = re.match(r"^(.+?)([A-Z][a-z]+)$", word)
    if camel_match:
        prefix, last_word = camel_match.groups()
        return prefix + pluralize(last_word)

    lower_word = word.lower()
    if lower_word in _IRREGULAR_PLURALS:
        plural = _IRREGULAR_PLURALS[lower_word]
        if word[0].isupper():
            return plural.capitalize()
        return plural

    if lower_word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower_word.endswith("y"):
        if len(word) > 1 and lower_word[-2] in "aeiou":
            return word + "s"
        return word[:-1] + "ies"
    if lower_word.endswith("fe"):
        return word[:-2] + "ves"
    return word + "s"


def kebab_case(name: str) -> str:
    """PostComment -> post-comment."""
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    return name.replace("_", "-").lower()


def snake_case(name: str) -> str:
    """PostComment -> post_comment."""
    return kebab_case(name).replace("-", "_")


def camel_case(name: str) -> str:
    """create_one -> createOne."""
    head, *rest = re.split(r"[-_]", name)
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]


def route_name(model_name: str) -> str:
    """The URL segment for a model's collection (Post -> posts)."""
    return pluralize(kebab_case(model_name))
