"""Binary split-pane layout tree.

Nodes live in an arena keyed by id; parent and child links are stored as ids
so the structure never holds reference cycles. All mutations keep these
invariants:

* exactly one root;
* every split has exactly two children;
* split sizes sum to 100 and each lies in [10, 90] after a resize;
* ``active_pane`` always names an existing pane (leaf) node.
"""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from splitmux.errors import CannotCloseError, ExitCode, NotAPaneError, SplitMuxError
from splitmux.models import SplitDirection, coerce_direction

logger = py_logging.getLogger(__name__)

MIN_SIZE = 10.0
MAX_SIZE = 90.0
DEFAULT_SIZES = (50.0, 50.0)


class NodeKind(str, Enum):
    PANE = "pane"
    SPLIT = "split"


@dataclass
class PaneNode:
    id: str
    kind: NodeKind
    parent: str | None = None
    session_id: str | None = None
    direction: SplitDirection | None = None
    children: list[str] | None = None
    sizes: tuple[float, float] | None = None

    @property
    def is_pane(self) -> bool:
        return self.kind == NodeKind.PANE


LayoutObserver = Callable[["PaneLayoutTree"], None]


def clamp_sizes(sizes: tuple[float, float] | list[float]) -> tuple[float, float]:
    """Normalize a size pair to sum 100 with both values in [10, 90]."""
    if len(sizes) != 2:
        raise SplitMuxError(
            f"Split sizes must be a pair, got {len(sizes)} values.",
            code=ExitCode.LAYOUT_ERROR,
            hint="Pass exactly two percentages.",
        )
    first, second = float(sizes[0]), float(sizes[1])
    total = first + second
    if total <= 0:
        return DEFAULT_SIZES
    first = first * 100.0 / total
    first = min(MAX_SIZE, max(MIN_SIZE, first))
    return (first, 100.0 - first)


class PaneLayoutTree:
    def __init__(self, on_change: LayoutObserver | None = None) -> None:
        self._on_change = on_change
        self._nodes: dict[str, PaneNode] = {}
        self._next_id = 1
        root = self._new_pane(None)
        self._root_id = root.id
        self._active_pane = root.id

    @property
    def root_id(self) -> str:
        return self._root_id

    @property
    def active_pane(self) -> str:
        return self._active_pane

    def node(self, node_id: str) -> PaneNode | None:
        return self._nodes.get(node_id)

    def split(
        self,
        pane_id: str,
        direction: SplitDirection | str,
        session_id: str | None,
    ) -> str:
        target = self._require_pane(pane_id)
        try:
            resolved_direction = coerce_direction(direction)
        except ValueError as exc:
            raise SplitMuxError(
                f"Unsupported split direction: {direction}",
                code=ExitCode.LAYOUT_ERROR,
                hint="Use horizontal or vertical.",
            ) from exc

        former_parent = target.parent
        new_pane = self._new_pane(session_id)
        split_node = PaneNode(
            id=self._allocate_id(),
            kind=NodeKind.SPLIT,
            parent=former_parent,
            direction=resolved_direction,
            children=[target.id, new_pane.id],
            sizes=DEFAULT_SIZES,
        )
        self._nodes[split_node.id] = split_node
        target.parent = split_node.id
        new_pane.parent = split_node.id

        if former_parent is None:
            self._root_id = split_node.id
        else:
            self._replace_child(former_parent, target.id, split_node.id)

        self._active_pane = new_pane.id
        logger.debug(
            "layout split pane=%s direction=%s new_pane=%s split=%s",
            pane_id,
            resolved_direction.value,
            new_pane.id,
            split_node.id,
        )
        self._notify()
        return new_pane.id

    def close(self, pane_id: str) -> str | None:
        target = self._require_pane(pane_id)
        if target.parent is None:
            raise CannotCloseError(
                f"Pane {pane_id} is the only pane and cannot be closed.",
                code=ExitCode.LAYOUT_ERROR,
                hint="Split the pane before closing it.",
            )

        parent = self._nodes[target.parent]
        siblings = self._children(parent)
        sibling_id = siblings[1] if siblings[0] == target.id else siblings[0]
        sibling = self._nodes[sibling_id]
        grandparent_id = parent.parent

        # Grandparent slot and sibling parent link are rewritten together.
        if grandparent_id is None:
            self._root_id = sibling.id
            sibling.parent = None
        else:
            self._replace_child(grandparent_id, parent.id, sibling.id)
            sibling.parent = grandparent_id

        del self._nodes[target.id]
        del self._nodes[parent.id]

        if self._active_pane == target.id:
            self._active_pane = self._first_pane_id(sibling.id)
        logger.debug(
            "layout close pane=%s promoted=%s active=%s",
            pane_id,
            sibling.id,
            self._active_pane,
        )
        self._notify()
        return target.session_id

    def set_active(self, pane_id: str, notify: bool = True) -> bool:
        node = self._nodes.get(pane_id)
        if node is None or not node.is_pane:
            return False
        self._active_pane = pane_id
        if notify:
            self._notify()
        return True

    def resize(self, split_id: str, sizes: tuple[float, float] | list[float]) -> tuple[float, float]:
        node = self._nodes.get(split_id)
        if node is None or node.kind != NodeKind.SPLIT:
            raise SplitMuxError(
                f"Split not found: {split_id}",
                code=ExitCode.LAYOUT_ERROR,
                hint="Resize targets must be split nodes.",
            )
        node.sizes = clamp_sizes(sizes)
        self._notify()
        return node.sizes

    def focus_next(self) -> str:
        return self._step_focus(1)

    def focus_previous(self) -> str:
        return self._step_focus(-1)

    def all_pane_ids(self) -> list[str]:
        panes: list[str] = []
        stack = [self._root_id]
        while stack:
            node = self._nodes[stack.pop()]
            if node.is_pane:
                panes.append(node.id)
            else:
                first, second = self._children(node)
                stack.append(second)
                stack.append(first)
        return panes

    def pane_instance(self, pane_id: str) -> str | None:
        node = self._nodes.get(pane_id)
        if node is None or not node.is_pane:
            return None
        return node.session_id

    def set_pane_instance(self, pane_id: str, session_id: str | None) -> bool:
        node = self._nodes.get(pane_id)
        if node is None or not node.is_pane:
            return False
        node.session_id = session_id
        self._notify()
        return True

    def find_pane(self, session_id: str) -> str | None:
        for pane_id in self.all_pane_ids():
            if self._nodes[pane_id].session_id == session_id:
                return pane_id
        return None

    def can_split(self, pane_id: str) -> bool:
        node = self._nodes.get(pane_id)
        return node is not None and node.is_pane

    def can_close(self, pane_id: str) -> bool:
        node = self._nodes.get(pane_id)
        if node is None or not node.is_pane:
            return False
        return node.parent is not None

    def reset(self) -> None:
        self._nodes.clear()
        self._next_id = 1
        root = self._new_pane(None)
        self._root_id = root.id
        self._active_pane = root.id
        self._notify()

    def structure(self, node_id: str | None = None) -> tuple[object, ...]:
        """Id-free shape of the subtree, for structural comparisons."""
        node = self._nodes[node_id or self._root_id]
        if node.is_pane:
            return (NodeKind.PANE.value, node.session_id)
        children, direction, sizes = self._split_shape(node)
        return (
            NodeKind.SPLIT.value,
            direction.value,
            sizes,
            self.structure(children[0]),
            self.structure(children[1]),
        )

    def to_dict(self) -> dict[str, object]:
        return {"root": self._node_dict(self._root_id), "activePane": self._active_pane}

    def _node_dict(self, node_id: str) -> dict[str, object]:
        node = self._nodes[node_id]
        if node.is_pane:
            return {"id": node.id, "type": node.kind.value, "instanceId": node.session_id}
        children, direction, sizes = self._split_shape(node)
        return {
            "id": node.id,
            "type": node.kind.value,
            "direction": direction.value,
            "sizes": list(sizes),
            "children": [self._node_dict(child) for child in children],
        }

    def _step_focus(self, offset: int) -> str:
        panes = self.all_pane_ids()
        try:
            index = panes.index(self._active_pane)
        except ValueError:
            index = 0
        target = panes[(index + offset) % len(panes)]
        self.set_active(target, notify=False)
        return target

    def _first_pane_id(self, node_id: str) -> str:
        node = self._nodes[node_id]
        while not node.is_pane:
            node = self._nodes[self._children(node)[0]]
        return node.id

    def _replace_child(self, parent_id: str, old_child: str, new_child: str) -> None:
        children = self._children(self._nodes[parent_id])
        if children[0] == old_child:
            children[0] = new_child
        elif children[1] == old_child:
            children[1] = new_child
        else:
            raise SplitMuxError(
                f"Layout corrupted: {old_child} is not a child of {parent_id}.",
                code=ExitCode.LAYOUT_ERROR,
            )

    def _require_pane(self, pane_id: str) -> PaneNode:
        node = self._nodes.get(pane_id)
        if node is None or not node.is_pane:
            raise NotAPaneError(
                f"Not a pane: {pane_id}",
                code=ExitCode.LAYOUT_ERROR,
                hint="Select an existing pane.",
            )
        return node

    def _new_pane(self, session_id: str | None) -> PaneNode:
        node = PaneNode(id=self._allocate_id(), kind=NodeKind.PANE, session_id=session_id)
        self._nodes[node.id] = node
        return node

    def _allocate_id(self) -> str:
        node_id = str(self._next_id)
        self._next_id += 1
        return node_id

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _children(self, node: PaneNode) -> list[str]:
        if node.children is None:
            raise SplitMuxError(
                f"Layout corrupted: split {node.id} has no children.",
                code=ExitCode.LAYOUT_ERROR,
            )
        return node.children

    def _split_shape(self, node: PaneNode) -> tuple[list[str], SplitDirection, tuple[float, float]]:
        if node.direction is None or node.sizes is None:
            raise SplitMuxError(
                f"Layout corrupted: split {node.id} has no direction or sizes.",
                code=ExitCode.LAYOUT_ERROR,
            )
        return self._children(node), node.direction, node.sizes
