import pytest

from procflow.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PROCFLOW_CONFIG", "PROCFLOW_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))

    assert config.database_url is None
    assert config.default_due_hours == 24
    assert config.layout.gap_x == 320.0
    assert config.analytics.near_due_hours == 4.0


def test_load_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "procflow.yaml"
    path.write_text(
        "database_url: sqlite://procflow.db\n"
        "layout:\n"
        "  gap_x: 200\n"
        "analytics:\n"
        "  outlier_hours: 48\n"
    )
    monkeypatch.setenv("PROCFLOW_CONFIG", str(path))

    config = load_config()

    assert config.database_url == "sqlite://procflow.db"
    assert config.layout.gap_x == 200
    assert config.layout.gap_y == 160.0
    assert config.analytics.outlier_hours == 48


def test_environment_overrides_database_url(tmp_path, monkeypatch):
    path = tmp_path / "procflow.yaml"
    path.write_text("database_url: sqlite://file.db\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite://generic.db")

    assert load_config(str(path)).database_url == "sqlite://generic.db"

    monkeypatch.setenv("PROCFLOW_DATABASE_URL", "sqlite://specific.db")
    assert load_config(str(path)).database_url == "sqlite://specific.db"


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "procflow.yaml"
    path.write_text("")

    assert load_config(str(path)).default_due_hours == 24
