"""
Engine instance for running scenarios against one node catalog.

Each `SystemDynamicsModel` owns its compounding caches, keyed by the
assumption set's content fingerprint and the efficiency ceiling. Scenarios
with identical assumptions reuse a cache; any change in inputs gets a fresh
one. Comparison views should create one instance per scenario rather than
share an instance across threads.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from src.utils.logging_utils import get_logger

from .assumptions import AssumptionSet
from .catalog import NodeCatalog, default_catalog
from .compounding import CompoundingCache
from .schema import ScenarioConfig
from .simulate import SimulationResult, resolve_inputs, run_simulation

logger = get_logger(__name__)


class SystemDynamicsModel:
    """
    Supply-chain system dynamics engine.

    Args:
        catalog: Node catalog (defaults to the bundled catalog)
        override_document: Persistent assumption override layer, applied
            before each scenario's patches
        max_change_pct: Per-pass clamp percentage (defaults to Config.MAX_CHANGE_PCT)
        previous_document: Layer in force before `override_document`; when
            given, `override_document` is a new update pass and its moves
            are clamped against it
    """

    def __init__(
        self,
        catalog: Optional[NodeCatalog] = None,
        override_document: Optional[Mapping[str, Any]] = None,
        max_change_pct: Optional[float] = None,
        previous_document: Optional[Mapping[str, Any]] = None,
    ):
        self.catalog = catalog if catalog is not None else default_catalog()
        self.override_document = dict(override_document) if override_document else None
        self.max_change_pct = max_change_pct
        self.previous_document = dict(previous_document) if previous_document is not None else None
        self._caches: Dict[Tuple[str, Optional[float]], CompoundingCache] = {}

    def cache_for(self, assumptions: AssumptionSet, max_efficiency_gain: Optional[float]) -> CompoundingCache:
        key = (assumptions.fingerprint, max_efficiency_gain)
        cache = self._caches.get(key)
        if cache is None:
            cache = CompoundingCache(assumptions, max_efficiency_gain)
            self._caches[key] = cache
            logger.debug(f"New compounding cache {key[0][:12]} (ceiling {max_efficiency_gain})")
        return cache

    def run(self, cfg: ScenarioConfig) -> SimulationResult:
        """Run one scenario; the scenario object is never mutated."""
        catalog, assumptions = resolve_inputs(
            cfg, self.catalog, self.override_document, self.max_change_pct, self.previous_document
        )
        cache = self.cache_for(assumptions, cfg.params.max_efficiency_gain)
        return run_simulation(catalog, assumptions, cfg, cfg.params, cache)

    def clear_caches(self) -> None:
        self._caches.clear()

    @property
    def cache_count(self) -> int:
        return len(self._caches)
