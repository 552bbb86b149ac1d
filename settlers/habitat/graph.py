"""HabitatGraph: append-only tree of habitat modules backed by ``nx.DiGraph``.

Edges point from parent to child.  Node insertion order is the order the
modules were returned by the narrative capability, so ``successors()`` yields
children in graph order.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional, Union

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from settlers.engine.errors import HabitatIntegrityError

logger = logging.getLogger(__name__)

ModuleKind = Literal["shuttle", "biodome", "tunnel"]

# ids are written verbatim into exports and HTML, so no whitespace or control characters
MODULE_ID_PATTERN = r"^[A-Za-z0-9_.:-]+$"


class HabitatModule(BaseModel):
    """One structure in the player's base.

    Wire names follow the narrative contract (``type``, ``connectedToId``);
    Python code uses ``kind`` and ``parent_id``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(pattern=MODULE_ID_PATTERN)
    kind: ModuleKind = Field(alias="type")
    parent_id: Optional[str] = Field(default=None, alias="connectedToId", pattern=MODULE_ID_PATTERN)

    @field_validator("id", mode="before")
    @classmethod
    def _strip_id(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("parent_id", mode="before")
    @classmethod
    def _blank_parent_is_root(cls, value: Any) -> Any:
        # the shuttle arrives with either null or "" as its parent
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


ModuleLike = Union[HabitatModule, Dict[str, Any]]


class HabitatGraph:
    """Ordered, immutable snapshot of the habitat.

    Build one directly only for already-trusted data; use :func:`merge` to
    accept a new turn's module list.
    """

    def __init__(self, modules: Iterable[HabitatModule] = ()) -> None:
        self._modules: Dict[str, HabitatModule] = {}
        for module in modules:
            self._modules[module.id] = module

        self.graph: nx.DiGraph = nx.DiGraph()
        for module in self._modules.values():
            self.graph.add_node(module.id, kind=module.kind)
        for module in self._modules.values():
            if module.parent_id is not None and module.parent_id in self._modules:
                self.graph.add_edge(module.parent_id, module.id)

    # ── container protocol ───────────────────────────────
    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[HabitatModule]:
        return iter(self._modules.values())

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HabitatGraph):
            return NotImplemented
        return self.modules == other.modules

    def __repr__(self) -> str:
        return f"HabitatGraph({[m.id for m in self]!r})"

    # ── queries ──────────────────────────────────────────
    @property
    def modules(self) -> List[HabitatModule]:
        return list(self._modules.values())

    @property
    def ids(self) -> List[str]:
        return list(self._modules)

    def get(self, module_id: str) -> Optional[HabitatModule]:
        return self._modules.get(module_id)

    @property
    def root_ids(self) -> List[str]:
        return [m.id for m in self if m.is_root]

    def children(self, module_id: str) -> List[HabitatModule]:
        """Direct children of *module_id* in graph order."""
        if module_id not in self.graph:
            return []
        return [self._modules[c] for c in self.graph.successors(module_id)]

    # ── summary for UI / logs ────────────────────────────
    def to_summary(self) -> str:
        if not self._modules:
            return "=== Habitat ===\n(empty)"
        lines = ["=== Habitat ==="]
        for module in self:
            link = f" <- {module.parent_id}" if module.parent_id else " (root)"
            lines.append(f"- {module.id} [{module.kind}]{link}")
        return "\n".join(lines)


def _coerce(record: ModuleLike) -> HabitatModule:
    if isinstance(record, HabitatModule):
        return record
    try:
        return HabitatModule.model_validate(record)
    except ValidationError as exc:
        module_id = record.get("id") if isinstance(record, dict) else None
        raise HabitatIntegrityError(
            f"Habitat module {module_id!r} is malformed: {exc.errors()[0]['msg']}",
            module_id=module_id,
        ) from exc


def merge(previous: HabitatGraph, incoming: Iterable[ModuleLike]) -> HabitatGraph:
    """Accept *incoming* as the next habitat snapshot after *previous*.

    *incoming* must repeat every module of *previous* unchanged; other ids are
    new additions, checked in arrival order.  Raises
    :class:`HabitatIntegrityError` naming the first offending module.
    """
    modules = [_coerce(record) for record in incoming]
    incoming_ids = {m.id for m in modules}

    for old in previous:
        if old.id not in incoming_ids:
            raise HabitatIntegrityError(
                f"Habitat module {old.id!r} disappeared from the habitat",
                module_id=old.id,
            )

    accepted: Dict[str, HabitatModule] = {}
    root_id = previous.root_ids[0] if previous.root_ids else None

    for module in modules:
        if module.id in accepted:
            raise HabitatIntegrityError(
                f"Habitat module {module.id!r} appears more than once",
                module_id=module.id,
            )

        old = previous.get(module.id)
        if old is not None:
            if old.kind != module.kind or old.parent_id != module.parent_id:
                raise HabitatIntegrityError(
                    f"Habitat module {module.id!r} changed from "
                    f"{old.kind}<-{old.parent_id} to {module.kind}<-{module.parent_id}",
                    module_id=module.id,
                )
            accepted[module.id] = module
            continue

        if module.parent_id is None:
            if root_id is not None:
                raise HabitatIntegrityError(
                    f"Habitat module {module.id!r} is a second root (root is {root_id!r})",
                    module_id=module.id,
                )
            root_id = module.id
        elif module.parent_id not in previous and module.parent_id not in accepted:
            raise HabitatIntegrityError(
                f"Habitat module {module.id!r} connects to unknown module {module.parent_id!r}",
                module_id=module.id,
            )
        accepted[module.id] = module

    if root_id is None:
        raise HabitatIntegrityError("Habitat has no root module")

    merged = HabitatGraph(accepted.values())
    added = len(merged) - len(previous)
    if added:
        logger.debug("Habitat grew by %d module(s) to %d", added, len(merged))
    return merged
