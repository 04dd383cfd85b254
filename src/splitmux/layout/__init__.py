"""Split-pane layout domain package."""

from .tree import MAX_SIZE, MIN_SIZE, NodeKind, PaneLayoutTree, PaneNode, clamp_sizes

__all__ = [
    "clamp_sizes",
    "MAX_SIZE",
    "MIN_SIZE",
    "NodeKind",
    "PaneLayoutTree",
    "PaneNode",
]
