"""Library entry point tying parsing, filtering, traversal and enrichment together.

Basic usage::

    from structgraph.analyzer import Analyzer, AnalyzerOptions

    result = Analyzer(AnalyzerOptions("./myproject", "UserService", max_depth=2)).analyze()
    print(result.total_nodes, result.total_edges)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .cache import EnrichmentCache
from .config import DEFAULT_DEPTH
from .errors import BlacklistError, SeedNotFoundError
from .llm import Enricher, create_enricher, normalize_provider
from .models import AnalysisResult
from .parser import SourceModel, build_source_model
from .scope_filter import Blacklist, ScopeFilter, load_blacklist
from .traverser import Traverser

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerOptions:
    project_path: Union[str, Path]
    seed: str
    max_depth: int = DEFAULT_DEPTH
    blacklist_file: Optional[Union[str, Path]] = None
    blacklist_types: Sequence[str] = ()
    blacklist_packages: Sequence[str] = ()
    llm_provider: str = ""
    api_key: str = ""
    llm_model: str = ""
    llm_endpoint: str = ""
    enable_cache: bool = True


class Analyzer:
    def __init__(self, options: AnalyzerOptions, enricher: Optional[Enricher] = None) -> None:
        if not str(options.project_path or "").strip():
            raise ValueError("project_path is required")
        if not (options.seed or "").strip():
            raise ValueError("seed is required")
        if options.max_depth <= 0:
            options.max_depth = DEFAULT_DEPTH
        self.options = options
        self.project_path = Path(options.project_path).expanduser().resolve()
        self.enricher = enricher
        self.model: Optional[SourceModel] = None
        self.blacklist = Blacklist()
        self.cache: Optional[EnrichmentCache] = None
        self.result: Optional[AnalysisResult] = None

    def build_model(self) -> SourceModel:
        if self.model is None:
            self.model = build_source_model(self.project_path)
        return self.model

    def struct_names(self) -> List[str]:
        return self.build_model().type_names()

    def analyze(self) -> AnalysisResult:
        model = self.build_model()
        seed = self.options.seed.strip()
        if model.get_type(seed) is None:
            raise SeedNotFoundError(seed, model.type_names())

        self.blacklist = self._load_blacklist()
        scope_filter = ScopeFilter(model, self.blacklist)

        enricher = self.enricher or self._create_enricher()
        if enricher is not None and self.options.enable_cache:
            self.cache = EnrichmentCache(self.project_path)

        traverser = Traverser(model, scope_filter, enricher=enricher, cache=self.cache)
        result = traverser.analyze(seed, self.options.max_depth, str(self.project_path))
        result.blacklist = self.blacklist.describe()

        if self.cache is not None:
            self.cache.persist()
        self.result = result
        return result

    def _load_blacklist(self) -> Blacklist:
        blacklist = Blacklist(self.options.blacklist_types, self.options.blacklist_packages)
        if self.options.blacklist_file:
            try:
                load_blacklist(self.options.blacklist_file, blacklist)
            except BlacklistError as exc:
                logger.warning("Continuing without blacklist file: %s", exc)
        return blacklist

    def _create_enricher(self) -> Optional[Enricher]:
        provider = self.options.llm_provider
        if not provider:
            return None
        if not self.options.api_key and normalize_provider(provider) != "ollama":
            logger.info("No API key for %s, skipping enrichment", provider)
            return None
        return create_enricher(
            provider,
            api_key=self.options.api_key,
            model=self.options.llm_model,
            endpoint=self.options.llm_endpoint,
        )
