# src/annuity/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Annuity state is a JSON-like dict mutated deterministically by apply_* modules.
This module is the single place that:

  - validates the state is dict-like
  - ensures the top-level containers exist (accounts, pool, params)

It never coerces malformed containers; it fails closed instead.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]

_CONTAINERS = ("accounts", "pool", "params")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st or one of its containers has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _CONTAINERS:
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    return st  # type: ignore[return-value]


__all__ = ["ensure_state"]
