"""Per-struct dependency extraction.

Three additive passes run for every struct: declared fields, the bodies of
its receiver methods, and name-based interface satisfaction.  The combined
edges are deduplicated on ``(source, target, kind)`` keeping the first.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .models import DependencyEdge, EdgeKind, MethodSymbol, TypeSymbol
from .parser import CONSTRUCTOR_PREFIX, SourceModel, node_text, type_name
from .scope_filter import ScopeFilter
from .type_resolver import TypeContext, TypeResolver, walk

logger = logging.getLogger(__name__)

INTERFACE_CONTEXT = "implements interface"


class DependencyAnalyzer:
    def __init__(
        self,
        model: SourceModel,
        scope_filter: ScopeFilter,
        resolver: Optional[TypeResolver] = None,
    ) -> None:
        self.model = model
        self.filter = scope_filter
        self.resolver = resolver or TypeResolver()

    def analyze(self, symbol: TypeSymbol) -> List[DependencyEdge]:
        edges: List[DependencyEdge] = []
        edges.extend(self._field_edges(symbol))
        for method in self.model.methods_of(symbol):
            edges.extend(self._method_edges(symbol, method))
        edges.extend(self._interface_edges(symbol))
        edges = deduplicate(edges)
        logger.debug("%s: %d dependencies", symbol.name, len(edges))
        return edges

    # ------------------------------------------------------------------
    # Field pass
    # ------------------------------------------------------------------

    def _field_edges(self, symbol: TypeSymbol) -> List[DependencyEdge]:
        edges = []
        for fld in symbol.fields:
            target = self.filter.element_target(fld.type_ref)
            if not target:
                continue
            kind = EdgeKind.EMBED if fld.embedded else EdgeKind.FIELD
            edges.append(DependencyEdge(symbol.name, target, kind, f"{fld.name} field"))
        return edges

    # ------------------------------------------------------------------
    # Method-body pass
    # ------------------------------------------------------------------

    def _method_edges(self, symbol: TypeSymbol, method: MethodSymbol) -> List[DependencyEdge]:
        if method.body is None:
            return []
        context = self.resolver.build_context(method.body)
        edges: List[DependencyEdge] = []

        for node in walk(method.body):
            if node.type == "composite_literal":
                target = self.filter.element_target(self.resolver.infer_from_expression(node))
                if target:
                    edges.append(DependencyEdge(
                        symbol.name, target, EdgeKind.INIT, f"{method.name} method"))
            elif node.type == "call_expression":
                edges.extend(self._call_edges(symbol, method, node, context))
        return edges

    def _call_edges(
        self,
        symbol: TypeSymbol,
        method: MethodSymbol,
        call: Any,
        context: TypeContext,
    ) -> List[DependencyEdge]:
        function = call.child_by_field_name("function")
        if function is None:
            return []

        if function.type == "identifier":
            name = node_text(function)
            if name == "new":
                edge = self._new_edge(symbol, method, call)
            elif name.startswith(CONSTRUCTOR_PREFIX):
                edge = self._constructor_edge(symbol, method, name, "")
            else:
                edge = None
            return [edge] if edge else []

        if function.type != "selector_expression":
            return []

        called = node_text(function.child_by_field_name("field"))
        operand = function.child_by_field_name("operand")

        if called.startswith(CONSTRUCTOR_PREFIX) and operand is not None and operand.type == "identifier":
            edge = self._constructor_edge(symbol, method, called, node_text(operand))
            if edge is not None:
                return [edge]

        receiver_type = self.resolver.infer_with_context(operand, context)
        if not receiver_type:
            return []
        target = self.filter.element_target(receiver_type)
        if not target:
            return []
        return [DependencyEdge(
            symbol.name, target, EdgeKind.METHOD_CALL, f"{method.name} -> {called}")]

    def _new_edge(self, symbol: TypeSymbol, method: MethodSymbol, call: Any) -> Optional[DependencyEdge]:
        args = call.child_by_field_name("arguments")
        if args is None or not args.named_children:
            return None
        target = self.model.get_type(type_name(args.named_children[0]))
        if target is None or not self.filter.is_analyzable(target.name):
            return None
        return DependencyEdge(symbol.name, target.name, EdgeKind.INIT, f"{method.name} method")

    def _constructor_edge(
        self,
        symbol: TypeSymbol,
        method: MethodSymbol,
        function_name: str,
        package_alias: str,
    ) -> Optional[DependencyEdge]:
        guessed = function_name[len(CONSTRUCTOR_PREFIX):]
        if not guessed:
            return None
        context = f"{method.name} -> {function_name}"

        if package_alias:
            package = self._imported_package(method, package_alias)
            preferred = self.model.find_function(package, function_name)
            candidates = [preferred] if preferred is not None else []
            candidates += [fn for fn in self.model.functions_named(function_name) if fn is not preferred]
            for function in candidates:
                target = self.filter.element_target(function.return_type)
                if target:
                    return DependencyEdge(symbol.name, target, EdgeKind.CONSTRUCTOR, context)

        if self.filter.is_analyzable(guessed) and self.model.get_type(guessed) is not None:
            return DependencyEdge(symbol.name, guessed, EdgeKind.CONSTRUCTOR, context)
        return None

    def _imported_package(self, method: MethodSymbol, alias: str) -> str:
        """Package name behind ``alias`` in the method's file: last import path segment."""
        path = self.model.imports_of(method.file_path).get(alias)
        if not path:
            return alias
        return path.rsplit("/", 1)[-1]

    # ------------------------------------------------------------------
    # Interface pass
    # ------------------------------------------------------------------

    def _interface_edges(self, symbol: TypeSymbol) -> List[DependencyEdge]:
        method_names = {m.name for m in self.model.methods_of(symbol)}
        edges = []
        for iface in self.model.interfaces():
            if not iface.methods or not self.filter.is_analyzable(iface.name):
                continue
            if iface.method_names <= method_names:
                edges.append(DependencyEdge(
                    symbol.name, iface.name, EdgeKind.INTERFACE, INTERFACE_CONTEXT))
        return edges


def deduplicate(edges: List[DependencyEdge]) -> List[DependencyEdge]:
    seen: Dict[Tuple[str, str, str], DependencyEdge] = {}
    for edge in edges:
        seen.setdefault(edge.key, edge)
    return list(seen.values())
