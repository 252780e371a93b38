"""Shared pytest fixtures for promptcraft tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from promptcraft.core.config import PromptcraftConfig
from promptcraft.core.document_store import InMemoryDocumentStore
from promptcraft.core.errors import ProviderCallError
from promptcraft.core.lineage import InMemoryLineagePersistence, PromptLineageStore
from promptcraft.core.orchestrator import EnhancementOrchestrator
from promptcraft.core.providers import BaseProvider, ProviderName, ProviderRegistry, ProviderRequest
from promptcraft.core.resolver import TemplateResolver
from promptcraft.core.templates import TemplateRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> PromptcraftConfig:
    """Create a test configuration rooted in a temporary data directory.

    Provider environment variables are cleared so tests never pick up a
    developer's real keys.
    """
    for name in ("OPENAI", "ANTHROPIC", "GEMINI", "MISTRAL"):
        monkeypatch.delenv(f"PROMPTCRAFT_{name}_API_KEY", raising=False)
    monkeypatch.delenv("PROMPTCRAFT_DEFAULT_PROVIDER", raising=False)
    monkeypatch.delenv("PROMPTCRAFT_DEFAULT_MODEL", raising=False)

    return PromptcraftConfig(
        _env_file=None,
        data_dir=temp_dir / "data",
        default_provider="openai",
        default_model="gpt-4o",
        openai_api_key="sk-test",
    )


class FakeProvider(BaseProvider):
    """Scripted provider: returns ``reply`` or raises ``ProviderCallError(error)``.

    Every request is appended to ``calls`` on the class so tests can assert
    on what was (or was not) sent.
    """

    name = ProviderName.OPENAI
    default_model = "gpt-4o"
    reply: str = "a majestic cat, golden hour light"
    error: str | None = None
    calls: list[ProviderRequest] = []

    def build_call(self, request):
        return "", {}, {}

    def parse_response(self, data):
        return ""

    async def complete(self, request: ProviderRequest) -> str:
        type(self).calls.append(request)
        if type(self).error is not None:
            raise ProviderCallError(type(self).error)
        return type(self).reply


@pytest.fixture
def fake_provider() -> Generator[type[FakeProvider], None, None]:
    FakeProvider.reply = "a majestic cat, golden hour light"
    FakeProvider.error = None
    FakeProvider.calls = []
    yield FakeProvider
    FakeProvider.calls = []


@pytest.fixture
def fake_registry(fake_provider) -> ProviderRegistry:
    """Provider registry where every provider name maps to the fake."""
    registry = ProviderRegistry()
    for provider_name in ProviderName:
        provider_class = type(
            f"Fake{provider_name.name.title()}Provider",
            (fake_provider,),
            {"name": provider_name},
        )
        registry.register(provider_class)
    return registry


@pytest.fixture
def template_registry() -> TemplateRegistry:
    return TemplateRegistry()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def resolver(template_registry, document_store, test_config, fake_registry) -> TemplateResolver:
    return TemplateResolver(template_registry, document_store, test_config, fake_registry)


@pytest.fixture
def lineage_persistence() -> InMemoryLineagePersistence:
    return InMemoryLineagePersistence()


@pytest.fixture
def lineage(lineage_persistence) -> PromptLineageStore:
    return PromptLineageStore(lineage_persistence)


@pytest.fixture
def orchestrator(resolver, lineage, test_config, fake_registry) -> EnhancementOrchestrator:
    return EnhancementOrchestrator(resolver, lineage, test_config, providers=fake_registry)
