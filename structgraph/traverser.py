"""Breadth-first expansion from a seed struct, cycle detection and enrichment."""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Deque, Dict, List, Optional, Set, Tuple

from .cache import EnrichmentCache
from .dependency import DependencyAnalyzer
from .errors import EnrichmentError
from .llm import Enricher
from .models import (
    AnalysisNode,
    AnalysisResult,
    DependencyEdge,
    Enrichment,
    FieldAnalysis,
    MethodAnalysis,
    TypeSymbol,
)
from .parser import SourceModel
from .scope_filter import ScopeFilter

logger = logging.getLogger(__name__)

ENRICH_WORKERS = 3


class Traverser:
    def __init__(
        self,
        model: SourceModel,
        scope_filter: ScopeFilter,
        enricher: Optional[Enricher] = None,
        cache: Optional[EnrichmentCache] = None,
    ) -> None:
        self.model = model
        self.filter = scope_filter
        self.dependencies = DependencyAnalyzer(model, scope_filter)
        self.enricher = enricher
        self.cache = cache
        self._node_lock = threading.Lock()

    def analyze(self, seed: str, max_depth: int, project_path: str = "") -> AnalysisResult:
        result = AnalysisResult(
            seed=seed,
            max_depth=max_depth,
            project_path=project_path,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        visited: Set[str] = set()
        queue: Deque[Tuple[str, int]] = deque([(seed, 0)])
        symbols: List[TypeSymbol] = []

        while queue:
            name, depth = queue.popleft()
            if depth > max_depth or name in visited:
                continue
            visited.add(name)

            symbol = self.model.get_type(name)
            if symbol is None:
                logger.debug("No struct named %s, skipping", name)
                continue
            logger.debug("Analyzing %s at depth %d", name, depth)

            edges = self.dependencies.analyze(symbol)
            for edge in edges:
                edge.depth = depth + 1
            result.nodes.append(build_node(symbol, edges, depth))
            symbols.append(symbol)
            result.total_edges += len(edges)

            for edge in edges:
                if edge.target not in visited and self.filter.is_analyzable(edge.target):
                    queue.append((edge.target, depth + 1))

        if self.enricher is not None and self.enricher.is_configured():
            self.enrich(result.nodes, symbols)

        result.cycles = detect_cycles(result.nodes)
        logger.info(
            "Analyzed %d structs, %d dependencies, %d cycles",
            result.total_nodes, result.total_edges, len(result.cycles),
        )
        return result

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def enrich(self, nodes: List[AnalysisNode], symbols: List[TypeSymbol]) -> None:
        """Fill node descriptions from the cache or the enricher.

        Returns once every dispatched call has finished.  A failed call
        leaves that node's placeholders in place.
        """
        if self.enricher is None:
            return
        provider = self.enricher.provider_id

        misses: List[Tuple[AnalysisNode, TypeSymbol]] = []
        for node, symbol in zip(nodes, symbols):
            cached = self.cache.get(symbol.name, symbol.combined_source, provider) if self.cache is not None else None
            if cached is not None:
                with self._node_lock:
                    apply_enrichment(node, cached)
                continue
            misses.append((node, symbol))

        logger.info("Enrichment: %d cached, %d to request", len(nodes) - len(misses), len(misses))
        if not misses:
            return

        with ThreadPoolExecutor(max_workers=ENRICH_WORKERS) as pool:
            futures = [pool.submit(self._enrich_one, node, symbol, provider) for node, symbol in misses]
        for future in futures:
            future.result()

    def _enrich_one(self, node: AnalysisNode, symbol: TypeSymbol, provider: str) -> None:
        try:
            enrichment = self.enricher.analyze(
                symbol.name, symbol.package, symbol.source, symbol.methods_source)
        except EnrichmentError as exc:
            logger.warning("Enrichment failed for %s: %s", symbol.name, exc)
            return
        except Exception:
            logger.exception("Enricher raised unexpectedly for %s", symbol.name)
            return

        with self._node_lock:
            apply_enrichment(node, enrichment)
        if self.cache is not None:
            self.cache.set(symbol.name, symbol.combined_source, provider, enrichment)


def build_node(symbol: TypeSymbol, edges: List[DependencyEdge], depth: int) -> AnalysisNode:
    return AnalysisNode(
        name=symbol.name,
        package=symbol.package,
        depth=depth,
        fields=[
            FieldAnalysis(name=f.name, type=f.type_ref, exported=f.exported, embedded=f.embedded)
            for f in symbol.fields
        ],
        methods=[
            MethodAnalysis(name=m.name, signature=m.signature, receiver=m.receiver, exported=m.exported)
            for m in symbol.methods
        ],
        edges=list(edges),
    )


def apply_enrichment(node: AnalysisNode, enrichment: Enrichment) -> None:
    if enrichment.summary:
        node.description = enrichment.summary
    for fld in node.fields:
        if fld.name in enrichment.fields:
            fld.description = enrichment.fields[fld.name]
    for method in node.methods:
        if method.name in enrichment.methods:
            method.description = enrichment.methods[method.name]


def detect_cycles(nodes: List[AnalysisNode]) -> List[List[str]]:
    """Depth-first search for back edges over the accumulated edges.

    Each cycle is reported as the path from the back-edge target to the
    current node, closed by repeating the target: ``[A, B, C, A]``.
    """
    graph: Dict[str, List[str]] = {}
    for node in nodes:
        for edge in node.edges:
            graph.setdefault(edge.source, []).append(edge.target)

    cycles: List[List[str]] = []
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    for root in list(graph):
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        path = [root]
        stack = [iter(graph.get(root, []))]
        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                on_stack.discard(path.pop())
            elif neighbor not in visited:
                visited.add(neighbor)
                on_stack.add(neighbor)
                path.append(neighbor)
                stack.append(iter(graph.get(neighbor, [])))
            elif neighbor in on_stack:
                start = path.index(neighbor)
                cycles.append(path[start:] + [neighbor])
    return cycles
