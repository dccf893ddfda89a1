from __future__ import annotations

import asyncio

import pytest

from pair_todo.domain.common.errors import ConflictError, NotFoundError, ValidationError


def test_link_and_view_partner_board(make_service):
    async def run():
        service, _ = await make_service()
        await service.link_partners("u1", "u2")
        done = await service.create_task("u2", "ship it", want_active=True)
        await service.create_task("u2", "review", want_active=True)
        await service.create_task("u2", "backlog")
        await service.set_completed(done.id, "u2", True)

        board = await service.partner_board("u1")
        assert board.partner_id == "u2"
        # open first, completed last
        assert [t.title for t in board.active_tasks] == ["review", "ship it"]
        assert board.completed_this_week == 1

        # symmetric
        assert (await service.partner_board("u2")).partner_id == "u1"

    asyncio.run(run())


def test_no_partner_gives_empty_board(make_service):
    async def run():
        service, _ = await make_service()
        board = await service.partner_board("u1")
        assert board.partner_id is None
        assert board.active_tasks == []
        assert board.completed_this_week == 0

    asyncio.run(run())


def test_self_partnering_is_rejected(make_service):
    async def run():
        service, _ = await make_service()
        with pytest.raises(ValidationError):
            await service.link_partners("u1", "u1")

    asyncio.run(run())


def test_second_partner_is_a_conflict(make_service):
    async def run():
        service, _ = await make_service()
        await service.link_partners("u1", "u2")
        with pytest.raises(ConflictError):
            await service.link_partners("u1", "u3")
        with pytest.raises(ConflictError):
            await service.link_partners("u3", "u2")
        assert (await service.partner_board("u3")).partner_id is None

    asyncio.run(run())


def test_unlink_removes_both_sides(make_service):
    async def run():
        service, _ = await make_service()
        await service.link_partners("u1", "u2")
        await service.unlink_partner("u2")
        assert (await service.partner_board("u1")).partner_id is None
        assert (await service.partner_board("u2")).partner_id is None
        with pytest.raises(NotFoundError):
            await service.unlink_partner("u1")
        # free to pair again
        await service.link_partners("u1", "u3")

    asyncio.run(run())


def test_deleting_owner_drops_partnership(make_service):
    async def run():
        service, _ = await make_service()
        await service.link_partners("u1", "u2")
        await service.delete_owner("u2")
        assert (await service.partner_board("u1")).partner_id is None

    asyncio.run(run())
