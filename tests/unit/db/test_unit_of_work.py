"""Tests for the UnitOfWork transaction boundary."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authz.db.models_user import UserEntity
from authz.db.unit_of_work import UnitOfWork


async def _user_ids(session: AsyncSession) -> list[str]:
    result = await session.execute(select(UserEntity.id).order_by(UserEntity.id))
    return list(result.scalars().all())


class TestAtomic:
    """Tests for UnitOfWork.atomic."""

    async def test_flushes_on_success(self, db_session: AsyncSession) -> None:
        uow = UnitOfWork(db_session)
        async with uow.atomic() as session:
            session.add(UserEntity(id="u1", email="u1@example.com"))
        assert await _user_ids(db_session) == ["u1"]

    async def test_rolls_back_on_error(self, db_session: AsyncSession) -> None:
        uow = UnitOfWork(db_session)
        db_session.add(UserEntity(id="kept", email="kept@example.com"))
        await uow.commit()

        with pytest.raises(RuntimeError):
            async with uow.atomic() as session:
                session.add(UserEntity(id="lost", email="lost@example.com"))
                await session.flush()
                raise RuntimeError("boom")
        assert await _user_ids(db_session) == ["kept"]

    async def test_timeout_rolls_back(self, db_session: AsyncSession) -> None:
        uow = UnitOfWork(db_session, timeout=0.05)
        with pytest.raises(TimeoutError):
            async with uow.atomic() as session:
                session.add(UserEntity(id="slow", email="slow@example.com"))
                await session.flush()
                await asyncio.sleep(1)
        assert await _user_ids(db_session) == []


class TestAfterCommit:
    """Tests for after-commit hooks."""

    async def test_hooks_run_after_commit(self, db_session: AsyncSession) -> None:
        uow = UnitOfWork(db_session)
        calls: list[str] = []

        async def hook() -> None:
            calls.append("ran")

        uow.after_commit(hook)
        assert calls == []
        await uow.commit()
        assert calls == ["ran"]
        await uow.commit()
        assert calls == ["ran"]

    async def test_hooks_dropped_on_rollback(self, db_session: AsyncSession) -> None:
        uow = UnitOfWork(db_session)
        calls: list[str] = []

        async def hook() -> None:
            calls.append("ran")

        uow.after_commit(hook)
        await uow.rollback()
        await uow.commit()
        assert calls == []

    async def test_failing_hook_does_not_block_others(
        self, db_session: AsyncSession
    ) -> None:
        uow = UnitOfWork(db_session)
        calls: list[str] = []

        async def broken() -> None:
            raise RuntimeError("cache down")

        async def working() -> None:
            calls.append("ran")

        uow.after_commit(broken)
        uow.after_commit(working)
        await uow.commit()
        assert calls == ["ran"]
