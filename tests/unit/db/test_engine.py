"""Tests for the lazily built engine."""

import pytest

from authz.db import engine as engine_mod


@pytest.fixture(autouse=True)
async def _reset_engine() -> None:
    await engine_mod.dispose_engine()


class TestSessionFactory:
    """Tests for the cached session factory."""

    async def test_factory_is_reused(self) -> None:
        first = engine_mod._get_session_factory()
        assert engine_mod._get_session_factory() is first
        await engine_mod.dispose_engine()

    async def test_dispose_rebuilds_on_next_use(self) -> None:
        first = engine_mod._get_session_factory()
        await engine_mod.dispose_engine()
        assert engine_mod._holder.engine is None
        assert engine_mod._get_session_factory() is not first
        await engine_mod.dispose_engine()

    async def test_url_comes_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUTH_DB_HOST", "db.internal")
        monkeypatch.setenv("AUTH_DB_DATABASE", "tokens")
        engine_mod._get_session_factory()
        assert engine_mod._holder.engine is not None
        url = engine_mod._holder.engine.url
        assert url.host == "db.internal"
        assert url.database == "tokens"
        assert url.drivername == "postgresql+asyncpg"
        await engine_mod.dispose_engine()
