"""Tests for the per-key request coalescing gate."""

import asyncio

import pytest

from streamcatalog.services.single_flight import SingleFlight


def test_concurrent_callers_share_one_call():
    calls = []

    async def scenario():
        flights = SingleFlight()

        async def fetch():
            calls.append(1)
            await asyncio.sleep(0.05)
            return "value"

        return await asyncio.gather(*(flights.run("k", fetch) for _ in range(5)))

    assert asyncio.run(scenario()) == ["value"] * 5
    assert len(calls) == 1


def test_different_keys_run_independently():
    calls = []

    async def scenario():
        flights = SingleFlight()

        def make(key):
            async def fetch():
                calls.append(key)
                await asyncio.sleep(0.01)
                return key
            return fetch

        return await asyncio.gather(flights.run("a", make("a")), flights.run("b", make("b")))

    assert asyncio.run(scenario()) == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


def test_sequential_calls_fetch_again():
    calls = []

    async def scenario():
        flights = SingleFlight()

        async def fetch():
            calls.append(1)
            return len(calls)

        first = await flights.run("k", fetch)
        assert not flights.in_flight("k")
        second = await flights.run("k", fetch)
        return first, second

    assert asyncio.run(scenario()) == (1, 2)


def test_exception_reaches_every_caller():
    async def scenario():
        flights = SingleFlight()

        async def fetch():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        return await asyncio.gather(
            flights.run("k", fetch), flights.run("k", fetch), return_exceptions=True
        )

    results = asyncio.run(scenario())
    assert all(isinstance(r, RuntimeError) for r in results)


def test_cancelled_caller_does_not_cancel_shared_work():
    async def scenario():
        flights = SingleFlight()
        done = asyncio.Event()

        async def fetch():
            await asyncio.sleep(0.05)
            done.set()
            return "value"

        impatient = asyncio.create_task(flights.run("k", fetch))
        patient = asyncio.create_task(flights.run("k", fetch))
        await asyncio.sleep(0.01)
        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient
        return await patient, done.is_set()

    assert asyncio.run(scenario()) == ("value", True)
