"""Late initialization of desired state from observed state."""

from __future__ import annotations

import copy
from typing import Any


def is_unset(value: Any) -> bool:
    """A desired field is unset when missing, null, or an empty list.

    Zero, False and the empty string are explicit user choices and count as set.
    """
    return value is None or value == []


def late_init_field(desired: dict[str, Any], key: str, observed: Any) -> bool:
    """Copy ``observed`` into ``desired[key]`` if the desired field is unset.

    Returns:
        True if ``desired`` changed
    """
    if not is_unset(desired.get(key)) or is_unset(observed) or observed == "":
        return False
    desired[key] = copy.deepcopy(observed)
    return True


def late_initialize(desired: dict[str, Any], observed: dict[str, Any]) -> bool:
    """Fill every unset field of ``desired`` present in ``observed``; never overwrite."""
    changed = False
    for key, value in observed.items():
        changed |= late_init_field(desired, key, value)
    return changed
