"""Wavefront OBJ export of a habitat placement.

Each module is a named object holding a single vertex at its layout position;
each parent/child connection is a line element between two vertices.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from config import settings
from settlers.habitat.graph import HabitatGraph
from settlers.habitat.layout import HabitatLayoutEngine, Position

logger = logging.getLogger(__name__)


def export_obj(graph: HabitatGraph, positions: Optional[Dict[str, Position]] = None) -> str:
    """Serialize the placed modules of *graph* to OBJ text."""
    if positions is None:
        positions = HabitatLayoutEngine().layout(graph)

    lines: List[str] = ["# Settlers of Mars habitat", f"# modules: {len(positions)}"]
    vertex_index: Dict[str, int] = {}
    for module in graph:
        pos = positions.get(module.id)
        if pos is None:
            continue
        vertex_index[module.id] = len(vertex_index) + 1  # OBJ indices are 1-based
        lines.append(f"o {module.id}")
        lines.append(f"# kind {module.kind}")
        lines.append(f"v {pos.x:.6f} {pos.y:.6f} {pos.z:.6f}")

    connections = [
        (vertex_index[parent], vertex_index[child])
        for parent, child in graph.graph.edges()
        if parent in vertex_index and child in vertex_index
    ]
    if connections:
        lines.append("o connections")
        lines.extend(f"l {a} {b}" for a, b in connections)

    return "\n".join(lines) + "\n"


def write_obj(
    graph: HabitatGraph,
    positions: Optional[Dict[str, Position]] = None,
    directory: Optional[Path] = None,
) -> Path:
    """Write :func:`export_obj` output to ``martian-habitat-<ms>.obj`` and return its path."""
    directory = Path(directory or settings.EXPORT_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"martian-habitat-{int(time.time() * 1000)}.obj"
    path.write_text(export_obj(graph, positions), encoding="utf-8")
    logger.info("Exported habitat to %s", path)
    return path
