"""Top-down habitat visualisation via PyVis, pinned to the layout positions."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from pyvis.network import Network  # type: ignore[import-untyped]

from settlers.habitat.graph import HabitatGraph
from settlers.habitat.layout import HabitatLayoutEngine, Position

logger = logging.getLogger(__name__)

# Colour / shape mapping per module kind
_KIND_STYLE = {
    "shuttle": {"color": "#C0C0C0", "shape": "box"},
    "biodome": {"color": "#ADD8E6", "shape": "dot"},
    "tunnel":  {"color": "#808080", "shape": "diamond"},
}

# layout units -> canvas pixels
_SCALE = 40


def render_habitat_html(
    graph: HabitatGraph,
    positions: Optional[Dict[str, Position]] = None,
) -> str:
    """Return an HTML string drawing *graph* seen from above (x/z plane).

    Modules missing from *positions* are not drawn.
    """
    if not len(graph):
        return "<p style='color:#888;'>Awaiting habitat data...</p>"
    if positions is None:
        positions = HabitatLayoutEngine().layout(graph)

    net = Network(height="420px", width="100%", directed=False,
                  bgcolor="#1a1a2e", font_color="white", cdn_resources="remote")
    net.toggle_physics(False)

    for module in graph:
        pos = positions.get(module.id)
        if pos is None:
            continue
        style = _KIND_STYLE[module.kind]
        net.add_node(module.id, label=module.id, color=style["color"], shape=style["shape"],
                     title=f"{module.id} [{module.kind}]", x=pos.x * _SCALE, y=pos.z * _SCALE,
                     physics=False)

    for parent, child in graph.graph.edges():
        if parent in positions and child in positions:
            net.add_edge(parent, child, width=3, color="#C1440E")

    logger.debug("Rendered habitat with %d module(s)", len(positions))
    return net.generate_html()
