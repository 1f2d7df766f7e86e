"""Deep merge for layered configuration dicts."""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``override`` layered over ``base``.

    Nested dicts merge recursively, lists and scalars are replaced, and a
    ``None`` in the override leaves the base value alone so a partial file
    can't blank out a setting from a lower layer.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Merge config layers in order; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged
