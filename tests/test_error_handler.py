import asyncio

import pytest

from leetdash.core.error_handler import safe_background_task


@pytest.mark.asyncio
async def test_safe_background_task_swallows_and_unregisters():
    registry = set()

    async def explode():
        raise ValueError("producer exploded")

    task = safe_background_task("explode", explode(), registry=registry)
    assert task in registry

    assert await task is None
    await asyncio.sleep(0)
    assert task not in registry


@pytest.mark.asyncio
async def test_safe_background_task_returns_result():
    async def compute():
        return {"ok": True}

    assert await safe_background_task("compute", compute()) == {"ok": True}

