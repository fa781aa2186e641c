from pathlib import Path

import pytest

import waystage.persistence as persistence
from waystage import WorkflowBlueprint, load_blueprint

FIXTURES = Path(__file__).parent / "fixtures" / "blueprints"
GUIDES = Path(__file__).resolve().parents[1] / "guides"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from local config files and cached repositories."""
    monkeypatch.setenv("WAYSTAGE_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.delenv("WAYSTAGE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WAYSTAGE_TRANSPORT", raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


@pytest.fixture
def blueprint_dir() -> Path:
    return FIXTURES


@pytest.fixture
def chain_blueprint() -> WorkflowBlueprint:
    """One stage: X, then Y which depends on X."""
    return load_blueprint(FIXTURES / "chain.yaml")


@pytest.fixture
def two_stage_blueprint() -> WorkflowBlueprint:
    """Review (A, B independent) followed by Sign Off (C, then D)."""
    return load_blueprint(FIXTURES / "two_stages.yaml")


@pytest.fixture
def approval_blueprint() -> WorkflowBlueprint:
    return load_blueprint(GUIDES / "approval_blueprint.yaml")
