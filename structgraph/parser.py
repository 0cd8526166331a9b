"""Go source model built on Tree-sitter.

The model is the symbol table every later stage reads from:

- struct declarations with their fields (``TypeSymbol`` / ``FieldSymbol``)
- receiver methods grouped by pointer-stripped receiver type
- interface declarations and their method names
- ``New``-prefixed free functions with their primary return type

Files are parsed by a bounded pool of worker threads.  Each worker returns a
private :class:`FileSymbols`; a single-threaded merge folds them into the
shared tables, after which the model is treated as read-only.
"""

from __future__ import annotations

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import tree_sitter_go
from tree_sitter import Language, Parser as TSParser

from .errors import ParseError, RootNotFoundError
from .models import (
    FieldSymbol,
    FunctionSymbol,
    InterfaceSymbol,
    MethodSymbol,
    TypeRef,
    TypeSymbol,
    is_exported,
)

logger = logging.getLogger(__name__)

GO_EXTENSION = ".go"
MANIFEST_FILE = "go.mod"
CONSTRUCTOR_PREFIX = "New"
MAX_WORKERS = 8

SKIP_DIRS = {"vendor", "testdata"}

_MODULE_LINE = re.compile(r"^\s*module\s+(\S+)")


@lru_cache(maxsize=1)
def go_language() -> Language:
    return Language(tree_sitter_go.language())


def new_go_parser() -> TSParser:
    """Return a fresh parser; tree-sitter parsers are not shared across threads."""
    return TSParser(go_language())


# ===================================================================
# Syntax helpers
# ===================================================================

def node_text(node: Any) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def type_name(node: Any) -> str:
    """Render a type (or type-shaped expression) node with Go spelling."""
    if node is None:
        return ""
    kind = node.type
    if kind in ("type_identifier", "identifier", "package_identifier", "field_identifier"):
        return node_text(node)
    if kind == "pointer_type":
        return "*" + type_name(node.named_children[-1])
    if kind == "qualified_type":
        return f"{node_text(node.child_by_field_name('package'))}.{node_text(node.child_by_field_name('name'))}"
    if kind == "selector_expression":
        return f"{type_name(node.child_by_field_name('operand'))}.{node_text(node.child_by_field_name('field'))}"
    if kind == "slice_type":
        return "[]" + type_name(node.child_by_field_name("element"))
    if kind in ("array_type", "implicit_length_array_type"):
        return "[...]" + type_name(node.child_by_field_name("element"))
    if kind == "map_type":
        key = type_name(node.child_by_field_name("key"))
        value = type_name(node.child_by_field_name("value"))
        return f"map[{key}]{value}"
    if kind == "channel_type":
        return "chan " + type_name(node.child_by_field_name("value"))
    if kind == "function_type":
        return "func"
    if kind == "interface_type":
        return "interface{}"
    if kind == "struct_type":
        return "struct{}"
    if kind == "generic_type":
        return type_name(node.child_by_field_name("type"))
    if kind in ("parenthesized_type", "parenthesized_expression"):
        return type_name(node.named_children[0]) if node.named_children else ""
    if kind == "unary_expression" and node_text(node.child_by_field_name("operator")) == "*":
        return "*" + type_name(node.child_by_field_name("operand"))
    return "unknown"


def render_signature(params: Any, result: Any) -> str:
    parts: List[str] = []
    if params is not None:
        for decl in params.named_children:
            if decl.type not in ("parameter_declaration", "variadic_parameter_declaration"):
                continue
            names = [node_text(n) for n in decl.children_by_field_name("name")]
            rendered = type_name(decl.child_by_field_name("type"))
            if decl.type == "variadic_parameter_declaration":
                rendered = "..." + rendered
            parts.append(f"{', '.join(names)} {rendered}" if names else rendered)
    signature = f"({', '.join(parts)})"

    results = _result_types(result)
    if len(results) == 1:
        signature += " " + results[0]
    elif results:
        signature += f" ({', '.join(results)})"
    return signature


def _result_types(result: Any) -> List[str]:
    if result is None:
        return []
    if result.type != "parameter_list":
        return [type_name(result)]
    return [
        type_name(decl.child_by_field_name("type"))
        for decl in result.named_children
        if decl.type in ("parameter_declaration", "variadic_parameter_declaration")
    ]


def _first_error_line(node: Any) -> int:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return current.start_point[0] + 1
        if current.has_error:
            stack.extend(reversed(current.children))
    return node.start_point[0] + 1


# ===================================================================
# Per-file extraction
# ===================================================================

@dataclass
class FileSymbols:
    """Symbols extracted from one file by one worker."""

    path: Path
    package: str
    types: List[TypeSymbol] = field(default_factory=list)
    methods: Dict[str, List[MethodSymbol]] = field(default_factory=dict)
    interfaces: List[InterfaceSymbol] = field(default_factory=list)
    functions: List[FunctionSymbol] = field(default_factory=list)
    imports: Dict[str, str] = field(default_factory=dict)


class GoFileParser:
    """Extracts :class:`FileSymbols` from a single Go file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._source = b""

    def parse(self, source: Optional[bytes] = None) -> FileSymbols:
        if source is None:
            try:
                source = self.path.read_bytes()
            except OSError as exc:
                raise ParseError(self.path, str(exc)) from exc
        self._source = source

        tree = new_go_parser().parse(source)
        root = tree.root_node
        if root.has_error:
            raise ParseError(self.path, f"syntax error near line {_first_error_line(root)}")

        symbols = FileSymbols(path=self.path, package=self._package_name(root))
        for child in root.named_children:
            if child.type == "import_declaration":
                self._collect_imports(child, symbols.imports)
            elif child.type == "type_declaration":
                self._collect_type_declaration(child, symbols)
            elif child.type == "method_declaration":
                method = self._method(child)
                if method is not None:
                    symbols.methods.setdefault(method.receiver_base, []).append(method)
            elif child.type == "function_declaration":
                function = self._constructor(child, symbols.package)
                if function is not None:
                    symbols.functions.append(function)
        return symbols

    # ------------------------------------------------------------------

    def _slice(self, node: Any) -> str:
        return self._source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def _package_name(root: Any) -> str:
        for child in root.named_children:
            if child.type == "package_clause":
                for sub in child.named_children:
                    if sub.type == "package_identifier":
                        return node_text(sub)
        return ""

    @staticmethod
    def _collect_imports(decl: Any, imports: Dict[str, str]) -> None:
        specs: List[Any] = []
        for child in decl.named_children:
            if child.type == "import_spec":
                specs.append(child)
            elif child.type == "import_spec_list":
                specs.extend(c for c in child.named_children if c.type == "import_spec")

        for spec in specs:
            path = node_text(spec.child_by_field_name("path")).strip('"`')
            alias_node = spec.child_by_field_name("name")
            alias = node_text(alias_node) if alias_node is not None else path.rsplit("/", 1)[-1]
            imports[alias] = path

    def _collect_type_declaration(self, decl: Any, symbols: FileSymbols) -> None:
        specs = [c for c in decl.named_children if c.type == "type_spec"]
        for spec in specs:
            name = node_text(spec.child_by_field_name("name"))
            body = spec.child_by_field_name("type")
            if not name or body is None:
                continue
            source = self._slice(decl) if len(specs) == 1 else "type " + self._slice(spec)

            if body.type == "struct_type":
                symbols.types.append(TypeSymbol(
                    name=name,
                    package=symbols.package,
                    file_path=str(self.path),
                    source=source,
                    fields=self._fields(body),
                ))
            elif body.type == "interface_type":
                symbols.interfaces.append(InterfaceSymbol(
                    name=name,
                    package=symbols.package,
                    file_path=str(self.path),
                    methods=self._interface_methods(body),
                    source=source,
                ))

    @staticmethod
    def _fields(struct_node: Any) -> List[FieldSymbol]:
        fields: List[FieldSymbol] = []
        for child in struct_node.named_children:
            if child.type != "field_declaration_list":
                continue
            for decl in child.named_children:
                if decl.type != "field_declaration":
                    continue
                type_node = decl.child_by_field_name("type")
                rendered = type_name(type_node)
                tag = node_text(decl.child_by_field_name("tag"))
                names = decl.children_by_field_name("name")

                if not names:
                    # Embedded field: optional '*' token before the type.
                    if any(c.type == "*" for c in decl.children) and not rendered.startswith("*"):
                        rendered = "*" + rendered
                    short = TypeRef.parse(rendered).name
                    fields.append(FieldSymbol(
                        name=short,
                        type_ref=rendered,
                        exported=is_exported(short),
                        embedded=True,
                        tag=tag,
                    ))
                    continue

                for name_node in names:
                    name = node_text(name_node)
                    fields.append(FieldSymbol(
                        name=name,
                        type_ref=rendered,
                        exported=is_exported(name),
                        tag=tag,
                    ))
        return fields

    @staticmethod
    def _interface_methods(iface: Any) -> List[Tuple[str, str]]:
        methods: List[Tuple[str, str]] = []
        stack = list(reversed(iface.named_children))
        while stack:
            child = stack.pop()
            if child.type in ("method_elem", "method_spec"):
                name = node_text(child.child_by_field_name("name"))
                signature = render_signature(
                    child.child_by_field_name("parameters"),
                    child.child_by_field_name("result"),
                )
                methods.append((name, signature))
            elif child.type == "method_spec_list":
                stack.extend(reversed(child.named_children))
        return methods

    def _method(self, decl: Any) -> Optional[MethodSymbol]:
        name = node_text(decl.child_by_field_name("name"))
        receiver_list = decl.child_by_field_name("receiver")
        if not name or receiver_list is None:
            return None
        receiver = ""
        for param in receiver_list.named_children:
            if param.type == "parameter_declaration":
                receiver = type_name(param.child_by_field_name("type"))
                break
        if not receiver:
            return None
        return MethodSymbol(
            name=name,
            signature=render_signature(
                decl.child_by_field_name("parameters"),
                decl.child_by_field_name("result"),
            ),
            receiver=receiver,
            exported=is_exported(name),
            source=self._slice(decl),
            file_path=str(self.path),
            body=decl.child_by_field_name("body"),
        )

    @staticmethod
    def _constructor(decl: Any, package: str) -> Optional[FunctionSymbol]:
        name = node_text(decl.child_by_field_name("name"))
        if not name.startswith(CONSTRUCTOR_PREFIX):
            return None
        results = _result_types(decl.child_by_field_name("result"))
        if not results or not results[0]:
            return None
        return FunctionSymbol(
            name=name,
            package=package,
            file_path="",
            return_type=results[0],
            signature=render_signature(
                decl.child_by_field_name("parameters"),
                decl.child_by_field_name("result"),
            ),
        )


# ===================================================================
# Source model
# ===================================================================

class SourceModel:
    """Read-only symbol table for one Go source tree."""

    def __init__(self, root: Path, module_name: str) -> None:
        self.root = root
        self.module_name = module_name
        self.files: List[Path] = []
        self.failed_files: List[Path] = []
        self._types: Dict[Tuple[str, str], TypeSymbol] = {}
        self._types_by_name: Dict[str, List[TypeSymbol]] = {}
        self._methods: Dict[Tuple[str, str], List[MethodSymbol]] = {}
        self._interfaces: Dict[Tuple[str, str], InterfaceSymbol] = {}
        self._interface_names: Dict[str, List[InterfaceSymbol]] = {}
        self._functions: Dict[str, FunctionSymbol] = {}
        self._imports: Dict[str, Dict[str, str]] = {}
        self._packages: set = set()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, root: Path, max_workers: Optional[int] = None) -> "SourceModel":
        root = Path(root)
        if not root.is_dir():
            raise RootNotFoundError(root)
        root = root.resolve()

        model = cls(root, discover_module_name(root))
        files = find_go_files(root)
        workers = max(1, min(max_workers or os.cpu_count() or 1, MAX_WORKERS))
        logger.debug("Parsing %d Go files with %d workers", len(files), workers)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(_parse_file_safely, files))

        for path, symbols in zip(files, results):
            if symbols is None:
                model.failed_files.append(path)
                continue
            model._merge(symbols)
        model._attach_methods()

        logger.info(
            "Parsed %d files (%d failed): %d structs, %d interfaces, %d constructors",
            len(model.files), len(model.failed_files),
            len(model._types), len(model._interfaces), len(model._functions),
        )
        return model

    def _merge(self, symbols: FileSymbols) -> None:
        self.files.append(symbols.path)
        self._imports[str(symbols.path)] = dict(symbols.imports)
        if symbols.package:
            self._packages.add(symbols.package)

        for symbol in symbols.types:
            if symbol.key in self._types:
                logger.debug("Duplicate struct %s.%s in %s ignored", symbol.package, symbol.name, symbols.path)
                continue
            self._types[symbol.key] = symbol
            self._types_by_name.setdefault(symbol.name, []).append(symbol)

        for receiver, methods in symbols.methods.items():
            self._methods.setdefault((symbols.package, receiver), []).extend(methods)

        for iface in symbols.interfaces:
            key = (iface.package, iface.name)
            if key not in self._interfaces:
                self._interfaces[key] = iface
                self._interface_names.setdefault(iface.name, []).append(iface)

        for function in symbols.functions:
            function.file_path = str(symbols.path)
            self._functions.setdefault(function.key, function)

    def _attach_methods(self) -> None:
        for key, symbol in self._types.items():
            symbol.methods = list(self._methods.get(key, []))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def packages(self) -> FrozenSet[str]:
        return frozenset(self._packages)

    def get_type(self, name: str) -> Optional[TypeSymbol]:
        """Resolve ``Name``, ``*Name`` or ``pkg.Name`` to a struct symbol."""
        name = name.strip()
        if name.startswith("*"):
            name = name[1:]
        package, _, short = name.rpartition(".")
        candidates = self._types_by_name.get(short)
        if not candidates:
            return None
        if package:
            for candidate in candidates:
                if candidate.package == package:
                    return candidate
        return candidates[0]

    def knows(self, name: str) -> bool:
        return name in self._types_by_name or name in self._interface_names

    def types(self) -> List[TypeSymbol]:
        return list(self._types.values())

    def type_names(self) -> List[str]:
        return sorted(self._types_by_name)

    def interfaces(self) -> List[InterfaceSymbol]:
        return list(self._interfaces.values())

    def find_function(self, package: str, name: str) -> Optional[FunctionSymbol]:
        return self._functions.get(f"{package}.{name}")

    def functions_named(self, name: str) -> List[FunctionSymbol]:
        return [fn for fn in self._functions.values() if fn.name == name]

    def methods_of(self, symbol: TypeSymbol) -> List[MethodSymbol]:
        return list(self._methods.get(symbol.key, []))

    def imports_of(self, path: str) -> Dict[str, str]:
        return dict(self._imports.get(str(path), {}))


def _parse_file_safely(path: Path) -> Optional[FileSymbols]:
    try:
        return GoFileParser(path).parse()
    except ParseError as exc:
        logger.warning("Skipping %s: %s", path, exc.reason)
        return None


def discover_module_name(root: Path) -> str:
    """Module path from ``go.mod``, else the directory name."""
    manifest = root / MANIFEST_FILE
    try:
        lines = manifest.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError:
        return root.name
    for line in lines:
        match = _MODULE_LINE.match(line)
        if match:
            return match.group(1).strip('"')
    return root.name


def find_go_files(root: Path) -> List[Path]:
    files: List[Path] = []
    for path in sorted(root.rglob(f"*{GO_EXTENSION}")):
        if not path.is_file() or path.name.endswith("_test.go"):
            continue
        rel_dirs = path.relative_to(root).parts[:-1]
        if any(part.startswith(".") or part in SKIP_DIRS for part in rel_dirs):
            continue
        files.append(path)
    return files


def build_source_model(root: Path, max_workers: Optional[int] = None) -> SourceModel:
    return SourceModel.build(root, max_workers=max_workers)
