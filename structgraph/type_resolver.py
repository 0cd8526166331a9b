"""Syntactic type inference for expressions inside method bodies.

No type checking happens here: the resolver recognises a handful of
construction shapes and otherwise answers ``""``.  Callers are expected to
validate any name it produces against the source model.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

from .parser import CONSTRUCTOR_PREFIX, node_text, type_name


class TypeContext:
    """Variable name -> type spelling for one method body."""

    def __init__(self, variables: Optional[Dict[str, str]] = None) -> None:
        self._variables: Dict[str, str] = dict(variables or {})

    def set_type(self, name: str, type_ref: str) -> None:
        self._variables[name] = type_ref

    def get_type(self, name: str) -> str:
        return self._variables.get(name, "")

    def __len__(self) -> int:
        return len(self._variables)


class TypeResolver:
    """Infers type spellings from Tree-sitter expression nodes."""

    def infer_from_expression(self, node: Any) -> str:
        if node is None:
            return ""
        kind = node.type

        if kind == "composite_literal":
            return type_name(node.child_by_field_name("type"))

        if kind == "call_expression":
            return self._infer_from_call(node)

        if kind == "unary_expression":
            if node_text(node.child_by_field_name("operator")) == "&":
                inner = self.infer_from_expression(node.child_by_field_name("operand"))
                return "*" + inner if inner else ""
            return ""

        if kind == "type_assertion_expression":
            return type_name(node.child_by_field_name("type"))

        # Bare identifiers are variables, never types.
        return ""

    def _infer_from_call(self, call: Any) -> str:
        function = call.child_by_field_name("function")
        if function is None:
            return ""
        args = _arguments(call)

        if function.type == "identifier":
            name = node_text(function)
            if name == "new" and args:
                return "*" + type_name(args[0])
            if name == "make" and args:
                return type_name(args[0])
            if len(name) > len(CONSTRUCTOR_PREFIX) and name.startswith(CONSTRUCTOR_PREFIX):
                return "*" + name[len(CONSTRUCTOR_PREFIX):]
            return ""

        if function.type == "selector_expression":
            called = node_text(function.child_by_field_name("field"))
            if len(called) > len(CONSTRUCTOR_PREFIX) and called.startswith(CONSTRUCTOR_PREFIX):
                package = type_name(function.child_by_field_name("operand"))
                return f"*{package}.{called[len(CONSTRUCTOR_PREFIX):]}"
        return ""

    def infer_with_context(self, node: Any, context: TypeContext) -> str:
        inferred = self.infer_from_expression(node)
        if inferred:
            return inferred
        if node is None:
            return ""
        if node.type == "identifier":
            return context.get_type(node_text(node))
        if node.type == "selector_expression":
            return type_name(node)
        return ""

    def build_context(self, body: Any) -> TypeContext:
        context = TypeContext()
        if body is None:
            return context

        for node in walk(body):
            if node.type == "short_var_declaration":
                self._record_assignment(node, context)
            elif node.type == "var_spec":
                self._record_var_spec(node, context)
        return context

    def _record_assignment(self, node: Any, context: TypeContext) -> None:
        left = _expressions(node.child_by_field_name("left"))
        right = _expressions(node.child_by_field_name("right"))
        for target, value in zip(left, right):
            if target.type != "identifier":
                continue
            inferred = self.infer_from_expression(value)
            if inferred:
                context.set_type(node_text(target), inferred)

    def _record_var_spec(self, spec: Any, context: TypeContext) -> None:
        declared = type_name(spec.child_by_field_name("type"))
        values = _expressions(spec.child_by_field_name("value"))
        for index, name_node in enumerate(spec.children_by_field_name("name")):
            inferred = declared
            if not inferred and index < len(values):
                inferred = self.infer_from_expression(values[index])
            if inferred:
                context.set_type(node_text(name_node), inferred)


def walk(node: Any) -> Iterator[Any]:
    """Pre-order walk over named nodes."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.named_children))


def _arguments(call: Any) -> List[Any]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return [a for a in args.named_children if a.type != "comment"]


def _expressions(node: Any) -> List[Any]:
    if node is None:
        return []
    if node.type == "expression_list":
        return [c for c in node.named_children if c.type != "comment"]
    return [node]
