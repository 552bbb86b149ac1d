"""Deterministic radial placement of a habitat tree in 3D space.

The root sits at the origin.  Children are placed breadth-first on a circle of
fixed radius around their parent, flat on the parent's plane (``y`` is
constant).  Each parent has its own angular cursor.  The cursor starts at an
angle derived from the parent's id and advances by a fixed step per child, so
an unchanged graph always lays out identically.
"""
from __future__ import annotations

import hashlib
import logging
import math
from typing import Dict, NamedTuple, Optional

import networkx as nx

from config import settings
from settlers.habitat.graph import HabitatGraph

logger = logging.getLogger(__name__)


class Position(NamedTuple):
    x: float
    y: float
    z: float

    def distance_to(self, other: "Position") -> float:
        return math.dist(self, other)


ORIGIN = Position(0.0, 0.0, 0.0)


def seed_angle(module_id: str) -> float:
    """Stable starting angle in ``[0, 2π)`` for *module_id*."""
    digest = hashlib.sha256(module_id.encode("utf-8")).digest()
    fraction = int.from_bytes(digest[:8], "big") / 2 ** 64
    return fraction * 2 * math.pi


class HabitatLayoutEngine:
    """Stateless layout: ``layout(graph)`` → ``{module_id: Position}``."""

    def __init__(
        self,
        radius: Optional[float] = None,
        angle_step_deg: Optional[float] = None,
    ) -> None:
        self.radius = radius if radius is not None else settings.LAYOUT_RADIUS
        step = angle_step_deg if angle_step_deg is not None else settings.LAYOUT_ANGLE_STEP_DEG
        self.angle_step = math.radians(step)

    def find_root(self, graph: HabitatGraph) -> Optional[str]:
        roots = graph.root_ids
        if roots:
            return roots[0]
        if len(graph):
            fallback = graph.ids[0]
            logger.warning("Habitat has no root module; laying out from %r", fallback)
            return fallback
        return None

    def layout(self, graph: HabitatGraph) -> Dict[str, Position]:
        root = self.find_root(graph)
        if root is None:
            return {}

        positions: Dict[str, Position] = {root: ORIGIN}
        cursors: Dict[str, float] = {}

        # bfs_edges visits each node once, children in successor (graph) order
        for parent, child in nx.bfs_edges(graph.graph, root):
            if child in positions:
                continue
            if parent not in cursors:
                cursors[parent] = seed_angle(parent)
            angle = cursors[parent]
            origin = positions[parent]
            positions[child] = Position(
                origin.x + self.radius * math.cos(angle),
                origin.y,
                origin.z + self.radius * math.sin(angle),
            )
            cursors[parent] = angle + self.angle_step

        unplaced = len(graph) - len(positions)
        if unplaced:
            logger.warning("%d habitat module(s) unreachable from %r were not placed", unplaced, root)
        return positions
