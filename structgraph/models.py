"""Core data models shared by parsing, analysis, enrichment and rendering."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

PENDING_DESCRIPTION = "pending analysis"

_ARRAY_PREFIX = re.compile(r"^\[[^\[\]]*\]")
_OPAQUE_PREFIXES = ("chan ", "chan<-", "<-chan", "func(", "func ", "interface{", "struct{")


# ===================================================================
# Type references
# ===================================================================

@dataclass(frozen=True)
class TypeRef:
    """Structured form of a Go type spelling such as ``*[]pkg.User``.

    Pointer and slice markers are counted, not ordered, so ``[]*T`` and
    ``*[]T`` share a canonical key.  Channel, function and literal
    interface/struct types are kept verbatim and flagged ``opaque``.
    """

    name: str
    package: str = ""
    pointer_depth: int = 0
    slice_depth: int = 0
    map_of: Optional[Tuple["TypeRef", "TypeRef"]] = None
    opaque: bool = False

    @classmethod
    def parse(cls, text: str) -> "TypeRef":
        text = (text or "").strip()
        pointers = 0
        slices = 0
        while text:
            if text.startswith("*"):
                pointers += 1
                text = text[1:]
            elif text.startswith("..."):
                slices += 1
                text = text[3:]
            elif text.startswith("[") and not text.startswith("map["):
                match = _ARRAY_PREFIX.match(text)
                if match is None:
                    break
                slices += 1
                text = text[match.end():]
            else:
                break

        if text.startswith("map["):
            close = _matching_bracket(text, 3)
            if close != -1:
                key = cls.parse(text[4:close])
                value = cls.parse(text[close + 1:])
                return cls("map", "", pointers, slices, (key, value))

        if not text or text == "func" or text.startswith(_OPAQUE_PREFIXES):
            return cls(text, "", pointers, slices, opaque=True)

        # Drop generic type arguments: Box[T] -> Box
        if "[" in text:
            text = text[: text.index("[")]

        package = ""
        if "." in text:
            package, text = text.rsplit(".", 1)
        return cls(text, package, pointers, slices)

    @property
    def is_map(self) -> bool:
        return self.map_of is not None

    @property
    def qualified(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    def element(self) -> "TypeRef":
        """Innermost named type: pointers and slices stripped, maps to values."""
        if self.map_of is not None:
            return self.map_of[1].element()
        return TypeRef(self.name, self.package, opaque=self.opaque)

    def canonical(self) -> str:
        prefix = "*" * self.pointer_depth + "[]" * self.slice_depth
        if self.map_of is not None:
            key, value = self.map_of
            return f"{prefix}map[{key.canonical()}]{value.canonical()}"
        return prefix + self.qualified

    def __str__(self) -> str:
        return self.canonical()


def _matching_bracket(text: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return -1


def is_exported(name: str) -> bool:
    return bool(name) and "A" <= name[0] <= "Z"


# ===================================================================
# Source symbols
# ===================================================================

@dataclass
class FieldSymbol:
    name: str
    type_ref: str
    exported: bool
    embedded: bool = False
    tag: str = ""

    @property
    def type(self) -> TypeRef:
        return TypeRef.parse(self.type_ref)


@dataclass
class MethodSymbol:
    name: str
    signature: str
    receiver: str
    exported: bool
    source: str
    file_path: str = ""
    # Body syntax node, only used by dependency analysis.
    body: Any = field(default=None, repr=False, compare=False)

    @property
    def receiver_base(self) -> str:
        return self.receiver.lstrip("*")


@dataclass
class TypeSymbol:
    name: str
    package: str
    file_path: str
    source: str
    fields: List[FieldSymbol] = field(default_factory=list)
    methods: List[MethodSymbol] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.package, self.name)

    @property
    def methods_source(self) -> str:
        return "\n\n".join(m.source for m in self.methods)

    @property
    def combined_source(self) -> str:
        """Declaration plus method bodies; used as cache key material."""
        if not self.methods:
            return self.source
        return self.source + "\n\n" + self.methods_source


@dataclass
class InterfaceSymbol:
    name: str
    package: str
    file_path: str
    methods: List[Tuple[str, str]] = field(default_factory=list)
    source: str = ""

    @property
    def method_names(self) -> set:
        return {name for name, _ in self.methods}


@dataclass
class FunctionSymbol:
    name: str
    package: str
    file_path: str
    return_type: str
    signature: str = ""

    @property
    def key(self) -> str:
        return f"{self.package}.{self.name}"


# ===================================================================
# Analysis results
# ===================================================================

class EdgeKind(str, Enum):
    FIELD = "field"
    EMBED = "embed"
    INIT = "init"
    METHOD_CALL = "method_call"
    INTERFACE = "interface"
    CONSTRUCTOR = "constructor"


@dataclass
class DependencyEdge:
    source: str
    target: str
    kind: EdgeKind
    context: str
    depth: int = 0

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.kind.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "kind": self.kind.value,
            "context": self.context,
            "depth": self.depth,
        }


@dataclass
class FieldAnalysis:
    name: str
    type: str
    exported: bool
    embedded: bool
    description: str = PENDING_DESCRIPTION


@dataclass
class MethodAnalysis:
    name: str
    signature: str
    receiver: str
    exported: bool
    description: str = PENDING_DESCRIPTION


@dataclass
class AnalysisNode:
    name: str
    package: str
    depth: int
    description: str = PENDING_DESCRIPTION
    fields: List[FieldAnalysis] = field(default_factory=list)
    methods: List[MethodAnalysis] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "package": self.package,
            "depth": self.depth,
            "description": self.description,
            "fields": [asdict(f) for f in self.fields],
            "methods": [asdict(m) for m in self.methods],
            "dependencies": [e.to_dict() for e in self.edges],
        }


@dataclass
class Enrichment:
    """Natural-language description returned by an enrichment collaborator."""

    summary: str
    fields: Dict[str, str] = field(default_factory=dict)
    methods: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "fields": [{"name": k, "description": v} for k, v in self.fields.items()],
            "methods": [{"name": k, "description": v} for k, v in self.methods.items()],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Enrichment":
        summary = payload.get("summary") or payload.get("struct_description") or ""
        return cls(
            summary=str(summary),
            fields=_named_descriptions(payload.get("fields")),
            methods=_named_descriptions(payload.get("methods")),
        )


def _named_descriptions(items: Any) -> Dict[str, str]:
    result: Dict[str, str] = {}
    if isinstance(items, dict):
        return {str(k): str(v) for k, v in items.items()}
    if not isinstance(items, list):
        return result
    for item in items:
        if isinstance(item, dict) and item.get("name"):
            result[str(item["name"])] = str(item.get("description", ""))
    return result


@dataclass
class CacheEntry:
    name: str
    content_hash: str
    provider: str
    payload: Dict[str, Any]
    cached_at: str


@dataclass
class AnalysisResult:
    seed: str
    max_depth: int
    project_path: str = ""
    nodes: List[AnalysisNode] = field(default_factory=list)
    total_edges: int = 0
    cycles: List[List[str]] = field(default_factory=list)
    blacklist: List[str] = field(default_factory=list)
    generated_at: str = ""

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def get_node(self, name: str) -> Optional[AnalysisNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def nodes_at_depth(self, depth: int) -> List[AnalysisNode]:
        return [n for n in self.nodes if n.depth == depth]

    def all_edges(self) -> List[DependencyEdge]:
        return [edge for node in self.nodes for edge in node.edges]

    def dependencies_of(self, name: str) -> List[DependencyEdge]:
        node = self.get_node(name)
        return list(node.edges) if node else []

    def dependents_of(self, name: str) -> List[str]:
        dependents: List[str] = []
        for node in self.nodes:
            if node.name in dependents:
                continue
            if any(edge.target == name for edge in node.edges):
                dependents.append(node.name)
        return dependents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_path": self.project_path,
            "seed": self.seed,
            "max_depth": self.max_depth,
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "generated_at": self.generated_at,
            "cycles": [list(c) for c in self.cycles],
            "blacklist": list(self.blacklist),
            "nodes": [n.to_dict() for n in self.nodes],
        }
