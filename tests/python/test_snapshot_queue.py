import asyncio
import json

from flocksim.app.server import SimulationController
from flocksim.config import AppConfig


def test_snapshot_queue_ack_cleanup() -> None:
    controller = SimulationController(AppConfig())

    async def exercise() -> None:
        controller.shoal.update(controller.config.time_step)
        await controller._broadcast_snapshot()
        controller.shoal.update(controller.config.time_step)
        await controller._broadcast_snapshot()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_snapshot_payload_carries_agents_and_threats() -> None:
    controller = SimulationController(AppConfig())
    queued = controller._serialize_snapshot()
    payload = json.loads(queued.payload)

    assert payload["type"] == "snapshot"
    body = payload["payload"]
    assert len(body["agents"]) == controller.config.shoal.agent_count
    assert len(body["threats"]) == 1
    assert body["world"]["area_size"] == controller.config.shoal.area_size


def test_reset_clears_queue_and_rewinds() -> None:
    controller = SimulationController(AppConfig())

    async def exercise() -> None:
        for _ in range(3):
            controller.scenario.step(controller.config.time_step)
            await controller._broadcast_snapshot()
        await controller.reset()
        async with controller._queue_lock:
            ticks = [item.tick for item in controller._snapshot_queue]
        assert ticks == [0]
        assert controller.tick == 0

    asyncio.run(exercise())
