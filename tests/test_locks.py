import asyncio
import gc

import pytest

from milestone_escrow.services.locks import ProjectLockRegistry

pytestmark = pytest.mark.anyio


async def test_same_project_shares_a_lock():
    registry = ProjectLockRegistry()
    first = registry.lock_for(1)
    assert registry.lock_for(1) is first
    assert registry.lock_for(2) is not first


async def test_hold_serialises_one_project_only():
    registry = ProjectLockRegistry()
    order: list[str] = []
    entered = asyncio.Event()

    async def slow() -> None:
        async with registry.hold(1):
            order.append("slow-start")
            entered.set()
            await asyncio.sleep(0.05)
            order.append("slow-end")

    async def same_project() -> None:
        await entered.wait()
        async with registry.hold(1):
            order.append("same")

    async def other_project() -> None:
        await entered.wait()
        async with registry.hold(2):
            order.append("other")

    await asyncio.gather(slow(), same_project(), other_project())

    assert order.index("other") < order.index("slow-end")
    assert order.index("same") > order.index("slow-end")


async def test_unused_locks_are_dropped():
    registry = ProjectLockRegistry()
    async with registry.hold(5):
        assert len(registry) == 1
    gc.collect()
    assert len(registry) == 0
