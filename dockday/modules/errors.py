"""Pipeline failure types.

Both abort the current tick only; the scheduler logs them and the next tick
starts from the last committed snapshot.
"""
from __future__ import annotations


class FetchFailure(RuntimeError):
    """The vessel feed was unreachable or returned an unusable payload."""


class PersistenceFailure(RuntimeError):
    """A snapshot/event/rollup store read or write failed."""
