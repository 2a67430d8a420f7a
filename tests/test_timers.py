import asyncio

from holdem_server.timers import TimerSlot


def test_timer_fires_with_its_token():
    fired = []

    async def scenario():
        slot = TimerSlot("test")

        async def callback(token):
            fired.append(slot.is_current(token))

        slot.schedule(0.01, callback)
        assert slot.pending
        await asyncio.sleep(0.05)
        assert not slot.pending

    asyncio.run(scenario())
    assert fired == [True]


def test_cancel_and_reschedule_keep_a_single_timer():
    fired = []

    async def scenario():
        slot = TimerSlot("test")

        async def first(token):
            fired.append("first")

        async def second(token):
            fired.append("second")

        slot.schedule(0.01, first)
        slot.schedule(0.02, second)
        await asyncio.sleep(0.05)

        slot.schedule(0.01, first)
        slot.cancel()
        assert not slot.pending
        await asyncio.sleep(0.03)

    asyncio.run(scenario())
    assert fired == ["second"]


def test_stale_token_is_not_current():
    slot = TimerSlot("test")
    slot.cancel()
    assert not slot.is_current(0)
    assert slot.is_current(1)
