"""
Node catalog: the static, validated set of supply-chain nodes and their parent graph.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import networkx as nx
import yaml
from pydantic import ValidationError

from src.utils.data_validation import validate_node_graph
from src.utils.logging_utils import get_logger

from .overrides import apply_patches, patches_from_document
from .schema import NodeConfig, NodeKind

logger = get_logger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "nodes.yaml"


class NodeCatalog:
    """
    Ordered, immutable collection of `NodeConfig`s.

    Edges in `graph` point from parent to child. Construction fails with
    ``ValueError`` on duplicate ids, unknown parent references or cycles.
    """

    def __init__(self, nodes: Sequence[NodeConfig]):
        self._nodes: List[NodeConfig] = list(nodes)
        self._by_id: Dict[str, NodeConfig] = {}
        self._index: Dict[str, int] = {}
        for i, node in enumerate(self._nodes):
            if node.id in self._by_id:
                raise ValueError(f"Duplicate node id: {node.id}")
            self._by_id[node.id] = node
            self._index[node.id] = i

        self.graph = nx.DiGraph()
        self.graph.add_nodes_from(self._by_id)
        for node in self._nodes:
            for parent in node.parent_node_ids:
                if parent not in self._by_id:
                    raise ValueError(f"Node {node.id} references unknown parent {parent}")
                self.graph.add_edge(parent, node.id)
        validate_node_graph(self.graph)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[NodeConfig]:
        return iter(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    @property
    def ids(self) -> List[str]:
        return [n.id for n in self._nodes]

    def get(self, node_id: str) -> NodeConfig:
        try:
            return self._by_id[node_id]
        except KeyError:
            raise KeyError(f"Unknown node id: {node_id}") from None

    def children(self, node_id: str) -> List[str]:
        return sorted(self.graph.successors(node_id), key=self._index.__getitem__)

    def parents(self, node_id: str) -> List[str]:
        return list(self.get(node_id).parent_node_ids)

    def by_kind(self, kind: NodeKind) -> List[NodeConfig]:
        return [n for n in self._nodes if n.kind == kind]

    def processing_order(self, primary_node_id: Optional[str] = None) -> List[str]:
        """
        Order in which market nodes clear each month.

        Compute-stock nodes come first (primary node leading), then
        derived-flow nodes in topological order, ties broken by catalog
        position. Workload drivers are excluded.
        """
        stock = [n.id for n in self.by_kind("compute_stock")]
        if primary_node_id in stock:
            stock.remove(primary_node_id)
            stock.insert(0, primary_node_id)
        derived = [
            node_id
            for node_id in nx.lexicographical_topological_sort(self.graph, key=self._index.__getitem__)
            if self._by_id[node_id].kind == "derived_flow"
        ]
        return stock + derived

    def with_overrides(self, node_overrides: Mapping[str, Mapping[str, Any]]) -> "NodeCatalog":
        """
        Return a new catalog with per-node partial patches applied.

        Unknown node ids, unknown fields and patches that fail validation are
        skipped with a warning; the base node is kept.
        """
        if not node_overrides:
            return self
        nodes = []
        unknown = set(node_overrides) - set(self._by_id)
        for node_id in sorted(unknown):
            logger.warning(f"Ignoring override for unknown node {node_id}")
        for node in self._nodes:
            patch = node_overrides.get(node.id)
            if not patch:
                nodes.append(node)
                continue
            doc = apply_patches(node.model_dump(), patches_from_document(dict(patch)))
            doc["id"] = node.id
            try:
                nodes.append(NodeConfig(**doc))
            except ValidationError as e:
                logger.warning(f"Ignoring invalid override for node {node.id}: {e.error_count()} error(s)")
                nodes.append(node)
        return NodeCatalog(nodes)


def load_node_catalog(path: Optional[str] = None) -> NodeCatalog:
    """Load and validate a node catalog from YAML (defaults to the bundled catalog)."""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    if not catalog_path.exists():
        raise FileNotFoundError(f"Node catalog not found: {catalog_path}")

    with open(catalog_path, "r") as f:
        data = yaml.safe_load(f) or {}

    records = data.get("nodes", []) if isinstance(data, dict) else data
    nodes = [NodeConfig(**record) for record in records]
    logger.debug(f"Loaded {len(nodes)} nodes from {catalog_path}")
    return NodeCatalog(nodes)


def default_catalog() -> NodeCatalog:
    return load_node_catalog()
