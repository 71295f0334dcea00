from collab_store.config import Settings


def test_defaults_use_memory_backend() -> None:
    settings = Settings()

    assert settings.backend == "memory"
    assert settings.database_url is None
    assert settings.pool_max_size == 10


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("COLLAB_STORE_BACKEND", "postgres")
    monkeypatch.setenv("COLLAB_STORE_DATABASE_URL", "postgresql://u:p@db:5432/docs")
    monkeypatch.setenv("COLLAB_STORE_POOL_MAX_SIZE", "25")
    monkeypatch.setenv("COLLAB_STORE_POOL_TIMEOUT", "3.5")

    settings = Settings()

    assert settings.backend == "postgres"
    assert settings.database_url == "postgresql://u:p@db:5432/docs"
    assert settings.pool_max_size == 25
    assert settings.pool_timeout == 3.5
