"""
access.py - Owner and Operator Capability Checks

The owner is a single identifier fixed when the engine is created; operators
are a set the owner maintains. The owner is implicitly privileged and is never
stored among the operators.

Checks read the engine's unit state only. The require_* variants raise
Unauthorized, and callers run them before computing any effect.
"""

from __future__ import annotations

from .core import UnitState, Unauthorized


def is_owner(state: UnitState, caller: str) -> bool:
    return caller == state['owner']


def is_owner_or_operator(state: UnitState, caller: str) -> bool:
    return is_owner(state, caller) or caller in state['operators']


def require_owner(state: UnitState, caller: str, action: str) -> None:
    """Raise Unauthorized unless caller is the owner."""
    if not is_owner(state, caller):
        raise Unauthorized(f"{caller} is not the owner; {action} requires owner")


def require_owner_or_operator(state: UnitState, caller: str, action: str) -> None:
    """Raise Unauthorized unless caller is the owner or an operator."""
    if not is_owner_or_operator(state, caller):
        raise Unauthorized(f"{caller} is not owner or operator; {action} requires one")
