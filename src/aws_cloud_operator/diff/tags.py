"""Tag set computation and diffing."""

from __future__ import annotations

from typing import Any

from ..constants import CONTROLLER_NAME, TAG_CONTROLLER, TAG_EXTERNAL_NAME, TAG_KIND


def tags_to_map(tags: list[dict[str, Any]] | dict[str, str] | None) -> dict[str, str]:
    """Normalize ``[{key, value}]`` (either capitalization) or a mapping into a dict."""
    if not tags:
        return {}
    if isinstance(tags, dict):
        return {str(k): str(v) for k, v in tags.items()}
    result: dict[str, str] = {}
    for tag in tags:
        key = tag.get("key", tag.get("Key"))
        value = tag.get("value", tag.get("Value", ""))
        result[str(key)] = "" if value is None else str(value)
    return result


def managed_tags(kind: str, external_name: str) -> dict[str, str]:
    """Tags the operator maintains on every taggable resource it manages."""
    return {
        TAG_CONTROLLER: CONTROLLER_NAME,
        TAG_KIND: kind,
        TAG_EXTERNAL_NAME: external_name,
    }


def desired_tags(user_tags: Any, kind: str, external_name: str) -> dict[str, str]:
    """User-declared tags plus the provider-managed tags, which take precedence."""
    tags = tags_to_map(user_tags)
    tags.update(managed_tags(kind, external_name))
    return tags


def diff_tags(desired: dict[str, str], observed: dict[str, str]) -> tuple[dict[str, str], list[str]]:
    """Compute the tags to add and the tag keys to remove.

    A key whose value differs appears in both results: removed, then added
    again with the desired value.

    Returns:
        Tuple of (tags to add, sorted keys to remove)
    """
    add = dict(desired)
    remove = []
    for key, value in observed.items():
        if key not in desired or desired[key] != value:
            remove.append(key)
        else:
            del add[key]
    return add, sorted(remove)


def tags_need_update(desired: dict[str, str], observed: dict[str, str]) -> bool:
    add, remove = diff_tags(desired, observed)
    return bool(add or remove)
