"""
Pytest configuration and fixtures for MetaIntent tests.
"""

import os
import sys
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

# Add project root to path so we can import the metaintent package
sys.path.insert(0, str(Path(__file__).parent.parent))

# -----------------------------------------------------------------------------
# Hypothesis Profiles for Test Performance
# -----------------------------------------------------------------------------
# Usage: HYPOTHESIS_PROFILE=fast pytest tests/
#
# Profiles:
#   fast   - 10 examples, minimal phases (quick iteration)
#   dev    - 50 examples, standard phases (default for local development)
#   ci     - 100 examples, all phases, no deadline (thorough CI testing)
# -----------------------------------------------------------------------------

settings.register_profile(
    "fast",
    max_examples=10,
    phases=[Phase.generate],
    verbosity=Verbosity.quiet,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=50,
    phases=[Phase.generate, Phase.target, Phase.shrink],
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.generate, Phase.target, Phase.shrink, Phase.explain],
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))

from metaintent.adapters import AdapterFactory, LLMAdapter
from metaintent.cache import CacheManager
from metaintent.config import BackendConfig, LoopConfig
from metaintent.errors import LLMServiceUnavailableError
from metaintent.gateway import ReasoningGateway
from metaintent.logger import StructuredLogger
from metaintent.metaloop import MetaLoopEngine
from metaintent.snapshots import InMemorySnapshotStore, IntentSnapshotManager
from metaintent.types import LLMBackend, LLMConfig, LLMResponse


class ScriptedAdapter(LLMAdapter):
    """
    Fake backend that replays a script.

    Each item is returned as response content, or raised if it is an
    exception. Once the script runs out, ``default`` is used the same way.
    """

    def __init__(self, script=None, backend=LLMBackend.CLAUDE, default=None):
        self.backend = backend
        self.script = list(script or [])
        self.default = default
        self.prompts: list[str] = []

    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        self.prompts.append(prompt)
        item = self.script.pop(0) if self.script else self.default
        if item is None:
            raise LLMServiceUnavailableError(f"{self.backend.value} script exhausted")
        if isinstance(item, BaseException):
            raise item
        return LLMResponse(content=item)


class FailingAdapter(LLMAdapter):
    """Backend that is always unavailable."""

    def __init__(self, backend=LLMBackend.CLAUDE, error=None):
        self.backend = backend
        self.error = error
        self.calls = 0

    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        self.calls += 1
        raise self.error or LLMServiceUnavailableError(f"{self.backend.value} is down")


@pytest.fixture
def scripted_adapter():
    """Build a ScriptedAdapter: scripted_adapter(["reply", ...], backend=..., default=...)."""
    return ScriptedAdapter


@pytest.fixture
def failing_adapter():
    return FailingAdapter


@pytest.fixture
def make_factory():
    """Factory with both backends registered; unspecified ones always fail."""

    def _make(primary=None, fallback=None):
        factory = AdapterFactory(BackendConfig(primary="claude", fallback="nim"))
        factory.register(LLMBackend.CLAUDE, primary or FailingAdapter(LLMBackend.CLAUDE))
        factory.register(LLMBackend.NIM, fallback or FailingAdapter(LLMBackend.NIM))
        return factory

    return _make


@pytest.fixture
def make_gateway(make_factory):
    def _make(primary=None, fallback=None, cache=None):
        return ReasoningGateway(
            make_factory(primary, fallback), cache or CacheManager(), StructuredLogger()
        )

    return _make


@pytest.fixture
def offline_gateway(make_gateway):
    """Gateway whose backends are all down."""
    return make_gateway()


@pytest.fixture
def snapshot_store():
    return InMemorySnapshotStore()


@pytest.fixture
def offline_engine(offline_gateway, snapshot_store):
    """Loop engine driven entirely by deterministic fallbacks."""
    return MetaLoopEngine(
        snapshots=IntentSnapshotManager(snapshot_store),
        loop_config=LoopConfig(),
        gateway=offline_gateway,
    )
