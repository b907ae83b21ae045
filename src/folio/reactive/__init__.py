"""Reactive layer — change propagation and live reload.

Connects source changes to browser reloads through the dependency graph,
the build session's epoch counter and SSE broadcasting.
"""

from folio.reactive.broadcaster import Broadcaster, Subscription
from folio.reactive.graph import DependencyGraph
from folio.reactive.session import BuildSession, SessionSnapshot

__all__ = [
    "Broadcaster",
    "BuildSession",
    "DependencyGraph",
    "SessionSnapshot",
    "Subscription",
]
