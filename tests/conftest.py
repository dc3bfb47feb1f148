import pytest

from cronbox.infrastructure.database import AppDatabase


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def sandbox_dirs(tmp_path, monkeypatch):
    """Point group and data directories at a temp dir."""
    groups_dir = tmp_path / "groups"
    data_dir = tmp_path / "data"
    monkeypatch.setattr("cronbox.groups.paths.GROUPS_DIR", groups_dir)
    monkeypatch.setattr("cronbox.groups.paths.DATA_DIR", data_dir)
    return groups_dir, data_dir
