"""Pytest configuration and fixtures for structgraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List

import pytest

from structgraph.errors import EnrichmentError
from structgraph.models import Enrichment
from structgraph.parser import SourceModel, build_source_model

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolate_user_config(tmp_path_factory, monkeypatch):
    """Keep the real ~/.structgraph config and API key variables out of tests."""
    home = tmp_path_factory.mktemp("structgraph_home")
    monkeypatch.setattr("structgraph.config.BASE_DIR", home)
    monkeypatch.setattr("structgraph.config.CONFIG_FILE", home / "config.toml")
    for name in ("STRUCTGRAPH_API_KEY", "GLM_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Multi-package Go project: service -> repository/cache -> model."""
    return FIXTURES / "sample_project"


@pytest.fixture
def e2e_project_path() -> Path:
    """Three-package Go project with a field and a constructor dependency."""
    return FIXTURES / "e2e_project"


@pytest.fixture
def sample_model(sample_project_path: Path) -> SourceModel:
    return build_source_model(sample_project_path)


@pytest.fixture
def make_go_project(temp_dir: Path) -> Callable[..., Path]:
    """Write ``{relative path: source}`` into a fresh project directory."""

    def _make(files: Dict[str, str], module: str = "example.com/app") -> Path:
        root = temp_dir / "project"
        root.mkdir(parents=True, exist_ok=True)
        if module:
            (root / "go.mod").write_text(f"module {module}\n\ngo 1.21\n", encoding="utf-8")
        for rel, source in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def ring_project(make_go_project) -> Path:
    """A -> B -> C -> A through pointer fields."""
    return make_go_project({
        "ring/ring.go": (
            "package ring\n\n"
            "type A struct {\n\tb *B\n}\n\n"
            "type B struct {\n\tc *C\n}\n\n"
            "type C struct {\n\ta *A\n}\n"
        ),
    })


class FakeEnricher:
    """In-memory enricher recording every call."""

    name = "fake"
    model = "fake-1"

    def __init__(self, fail_for: tuple = (), configured: bool = True) -> None:
        self.calls: List[str] = []
        self.fail_for = set(fail_for)
        self.configured = configured

    @property
    def provider_id(self) -> str:
        return f"{self.name}:{self.model}"

    def is_configured(self) -> bool:
        return self.configured

    def analyze(self, symbol_name, package, declaration, methods_source) -> Enrichment:
        self.calls.append(symbol_name)
        if symbol_name in self.fail_for:
            raise EnrichmentError(f"no description for {symbol_name}")
        return Enrichment(
            summary=f"{symbol_name} in {package}",
            fields={"repo": "repository handle"},
            methods={"Warm": "preloads the cache"},
        )


@pytest.fixture
def fake_enricher() -> FakeEnricher:
    return FakeEnricher()
