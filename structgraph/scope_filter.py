"""Decides which type references are project-internal and worth following."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

import yaml

from .errors import BlacklistError
from .models import TypeRef, is_exported
from .parser import SourceModel

logger = logging.getLogger(__name__)

BUILTIN_TYPES = frozenset({
    "bool", "string",
    "int", "int8", "int16", "int32", "int64",
    "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
    "byte", "rune",
    "float32", "float64", "complex64", "complex128",
    "error", "any", "interface{}",
})

STDLIB_ROOTS = frozenset({
    "context", "net", "io", "os", "fmt", "time", "sync", "errors", "strings",
    "bytes", "http", "json", "xml", "sql", "crypto", "encoding", "bufio", "log",
    "path", "filepath", "regexp", "sort", "strconv", "testing", "reflect",
    "runtime", "unsafe", "math", "flag", "html", "image", "mime", "template",
    "text", "unicode", "archive", "compress", "container", "database", "debug",
    "embed", "expvar", "go", "hash", "index", "plugin", "syscall",
})


def _strip_markers(type_ref: str) -> str:
    type_ref = type_ref.strip()
    if type_ref.startswith("*"):
        type_ref = type_ref[1:]
    if type_ref.startswith("[]"):
        type_ref = type_ref[2:]
    return type_ref


class Blacklist:
    """Type names and package prefixes excluded from analysis."""

    def __init__(self, types: Iterable[str] = (), packages: Iterable[str] = ()) -> None:
        self._types = set()
        self._packages = set()
        for name in types:
            self.add_type(name)
        for name in packages:
            self.add_package(name)

    def add_type(self, name: str) -> None:
        name = name.strip()
        if name:
            self._types.add(name)

    def add_package(self, name: str) -> None:
        name = name.strip()
        if name:
            self._packages.add(name)

    @property
    def types(self) -> List[str]:
        return sorted(self._types)

    @property
    def packages(self) -> List[str]:
        return sorted(self._packages)

    def describe(self) -> List[str]:
        """Flat listing for reports: types, then ``pkg.*`` patterns."""
        return self.types + [f"{p}.*" for p in self.packages]

    def is_blocked(self, type_ref: str) -> bool:
        name = _strip_markers(type_ref)
        if not name:
            return False
        if name in self._types:
            return True

        qualifier, _, short = name.rpartition(".")
        if not qualifier:
            return False
        if short in self._types:
            return True
        return any(qualifier.startswith(pkg) for pkg in self._packages)

    def __len__(self) -> int:
        return len(self._types) + len(self._packages)


def load_blacklist(path: Union[str, Path, None], blacklist: Optional[Blacklist] = None) -> Blacklist:
    """Load ``types:`` and ``packages:`` lists from a YAML file.

    Entries are added to ``blacklist`` when one is given.  A missing file
    yields an unchanged blacklist; malformed content raises
    :class:`BlacklistError`.
    """
    blacklist = blacklist if blacklist is not None else Blacklist()
    if not path:
        return blacklist

    path = Path(path)
    if not path.exists():
        logger.debug("Blacklist file %s not found, using an empty blacklist", path)
        return blacklist

    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BlacklistError(f"cannot read blacklist {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise BlacklistError(f"invalid YAML in blacklist {path}: {exc}") from exc

    if document is None:
        return blacklist
    if not isinstance(document, dict):
        raise BlacklistError(f"blacklist {path} must be a mapping with 'types' and 'packages'")

    for key, add in (("types", blacklist.add_type), ("packages", blacklist.add_package)):
        entries = document.get(key) or []
        if not isinstance(entries, list) or not all(isinstance(e, str) for e in entries):
            raise BlacklistError(f"blacklist {path}: '{key}' must be a list of strings")
        for entry in entries:
            add(entry)

    logger.debug("Loaded blacklist %s: %d types, %d packages",
                 path, len(blacklist.types), len(blacklist.packages))
    return blacklist


class ScopeFilter:
    """Filters type references down to analyzable project structs."""

    def __init__(self, model: SourceModel, blacklist: Optional[Blacklist] = None) -> None:
        self.model = model
        self.blacklist = blacklist or Blacklist()
        self.module_name = model.module_name
        self.project_packages = model.packages

    def is_analyzable(self, type_ref: str) -> bool:
        if not type_ref:
            return False
        name = _strip_markers(type_ref)
        if not name or name.startswith("map["):
            return False
        if name in BUILTIN_TYPES:
            return False
        if name.split(".", 1)[0] in STDLIB_ROOTS:
            return False
        if self.blacklist.is_blocked(name):
            return False
        if not is_exported(name.rsplit(".", 1)[-1]):
            return False
        return self._is_internal(name)

    def _is_internal(self, name: str) -> bool:
        if "." not in name:
            if self.model.knows(name) or name in self.project_packages:
                return True
        if self.module_name and name.startswith(self.module_name):
            return True
        return name.split(".", 1)[0] in self.project_packages

    def element_target(self, type_ref: str) -> str:
        """Short name of the analyzable element type of ``type_ref``, or ``""``.

        Pointers and slices are stripped and maps resolve to their value
        type before the qualified name is checked.
        """
        element = TypeRef.parse(type_ref).element()
        if element.opaque or not element.name:
            return ""
        if not self.is_analyzable(element.qualified):
            return ""
        return element.name
