"""
Shared pytest fixtures for all tests.
"""

import pytest
from pathlib import Path

# Add the project root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from regency.core import IssueLockRegistry, PositionQueuePolicy, ResolutionOrchestrator
from regency.db import Catalog, Database, GameStateStore, HistoryLedger, VariableStore
from regency.llm.gateway import MockGateway
from regency.llm.narrative import NarrativeGenerator
from regency.llm.prompt_registry import PromptRegistry


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Temporary database path for testing."""
    return tmp_path / "test_game.db"


@pytest.fixture
def database(db_path):
    """Fresh file database with schema initialized."""
    db = Database(db_path)
    db.ensure_schema()
    return db


@pytest.fixture
def catalog(database):
    return Catalog(database)


@pytest.fixture
def variable_store(database):
    return VariableStore(database)


@pytest.fixture
def history(database):
    return HistoryLedger(database)


@pytest.fixture
def game_state(database):
    return GameStateStore(database)


@pytest.fixture
def kingdom_db(database):
    """
    Database seeded with the kingdom scenario.

    Contains:
    - 4 roles
    - 4 variables bounded 0-100 (treasury 50, militarism 30,
      diplomacy 60, morale 55)
    - northern_border active, trade_crisis and plague_outbreak pending
    - round 1, game active
    """
    from tests.fixtures.state import setup_kingdom

    setup_kingdom(database)
    return database


# =============================================================================
# LLM Fixtures
# =============================================================================

@pytest.fixture
def mock_gateway():
    """Mock LLM gateway for testing without API calls."""
    return MockGateway()


@pytest.fixture
def prompt_registry():
    """Prompt registry pointing to actual prompts."""
    prompts_dir = Path(__file__).parent.parent / "regency" / "prompts"
    return PromptRegistry(prompts_dir)


@pytest.fixture
def generator(mock_gateway, prompt_registry):
    """Narrative generator over the mock gateway with a short timeout."""
    gen = NarrativeGenerator(mock_gateway, prompts=prompt_registry, timeout=2.0)
    yield gen
    gen.close()


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def orchestrator(kingdom_db, generator):
    """Orchestrator over the seeded kingdom and the mock generator."""
    return ResolutionOrchestrator(
        database=kingdom_db,
        generator=generator,
        policy=PositionQueuePolicy(),
        locks=IssueLockRegistry()
    )


# =============================================================================
# Generator Output Fixtures
# =============================================================================

@pytest.fixture
def military_outcome():
    """Outcome for a decision that raises militarism by 15."""
    return {
        "narrative": "The northern garrisons are reinforced and the border holds.",
        "stateChanges": {"militarism_level": 15},
        "success": True
    }


@pytest.fixture
def overreach_outcome():
    """Outcome proposing a change far past the militarism bound."""
    return {
        "narrative": "The kingdom mobilizes every able body for war.",
        "stateChanges": {"militarism_level": 90},
        "success": True
    }
