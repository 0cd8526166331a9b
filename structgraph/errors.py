"""Exception hierarchy for structgraph.

Only :class:`FatalPreconditionError` subclasses stop an analysis run; every
other error is caught at the component boundary, logged, and degrades the
result instead of failing it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class StructGraphError(Exception):
    """Base class for all structgraph errors."""


class FatalPreconditionError(StructGraphError):
    """The analysis cannot start."""


class RootNotFoundError(FatalPreconditionError):
    def __init__(self, root: Path) -> None:
        super().__init__(f"project path does not exist or is not a directory: {root}")
        self.root = root


class SeedNotFoundError(FatalPreconditionError):
    def __init__(self, seed: str, available: Optional[Iterable[str]] = None) -> None:
        self.seed = seed
        self.available = sorted(available or [])
        message = f"start struct '{seed}' not found"
        if self.available:
            message += f", available: {', '.join(self.available)}"
        super().__init__(message)


class ParseError(StructGraphError):
    """A single source file could not be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class BlacklistError(StructGraphError):
    """The blacklist document is malformed."""


class EnrichmentError(StructGraphError):
    """An enrichment collaborator failed to describe a symbol."""
