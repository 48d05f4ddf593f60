"""Round-robin selector and pool registry."""

from uuid import uuid4

import pytest

from lead_engine.core.exceptions import AgentAlreadyInPool, AgentNotInPool, UnknownAgent
from lead_engine.crud.agent_pool import get_ring
from lead_engine.models import Agent
from lead_engine.services.round_robin import RoundRobinSelector


async def flags(session_factory, source_id):
    async with session_factory() as s:
        return [(m.agent_id, m.is_next_in_rotation) for m, _ in await get_ring(s, source_id)]


async def cycle(session_factory, locks, source_id, steps):
    picked = []
    for _ in range(steps):
        async with session_factory() as s:
            selector = RoundRobinSelector(s, locks)
            agent = await selector.next_agent(source_id)
            picked.append(agent.agent_id)
            await selector.advance(source_id, agent.agent_id)
            await s.commit()
    return picked


@pytest.mark.parametrize("size", [1, 2, 3, 5])
async def test_every_member_visited_before_repeat(factory, session_factory, locks, size):
    source = await factory.source()
    agents = await factory.agents(size)
    ids = [a.agent_id for a in agents]
    await factory.pool(source.source_id, ids)

    picked = await cycle(session_factory, locks, source.source_id, size * 2)

    assert picked[:size] == ids
    assert picked[size:] == ids


async def test_ineligible_members_are_skipped_but_keep_ring_order(factory, session_factory, locks):
    source = await factory.source()
    a = await factory.agent()
    b = await factory.agent(is_available=False)
    c = await factory.agent()
    ids = sorted([a.agent_id, b.agent_id, c.agent_id])
    await factory.pool(source.source_id, ids)
    offline = b.agent_id

    picked = await cycle(session_factory, locks, source.source_id, 4)

    assert offline not in picked
    eligible = [i for i in ids if i != offline]
    assert picked == eligible + eligible


async def test_flagged_ineligible_falls_through_to_next_eligible(factory, session_factory, locks):
    source = await factory.source()
    agents = await factory.agents(3)
    ids = [a.agent_id for a in agents]
    await factory.pool(source.source_id, ids, flagged=ids[1])
    async with session_factory() as s:
        agent = await s.get(Agent, ids[1])
        agent.is_excluded = True
        await s.commit()

    async with session_factory() as s:
        chosen = await RoundRobinSelector(s, locks).next_agent(source.source_id)

    assert chosen.agent_id == ids[2]


async def test_empty_pool_yields_nothing(factory, session_factory, locks):
    source = await factory.source()
    async with session_factory() as s:
        assert await RoundRobinSelector(s, locks).next_agent(source.source_id) is None
        assert await RoundRobinSelector(s, locks).advance(source.source_id, uuid4()) is None


async def test_advance_wraps_and_leaves_single_flag(factory, session_factory, locks):
    source = await factory.source()
    ids = [a.agent_id for a in await factory.agents(3)]
    await factory.pool(source.source_id, ids, flagged=ids[2])

    async with session_factory() as s:
        assert await RoundRobinSelector(s, locks).advance(source.source_id, ids[2]) == ids[0]
        await s.commit()

    assert await flags(session_factory, source.source_id) == [(ids[0], True), (ids[1], False), (ids[2], False)]


async def test_advance_from_non_member_flags_first(factory, session_factory, locks):
    source = await factory.source()
    ids = [a.agent_id for a in await factory.agents(2)]
    await factory.pool(source.source_id, ids, flagged=ids[1])

    async with session_factory() as s:
        assert await RoundRobinSelector(s, locks).advance(source.source_id, uuid4()) == ids[0]
        await s.commit()

    assert [f for _, f in await flags(session_factory, source.source_id)] == [True, False]


async def test_single_member_pool_keeps_its_flag(factory, session_factory, locks):
    source = await factory.source()
    agent = await factory.agent()
    await factory.pool(source.source_id, [agent.agent_id])

    async with session_factory() as s:
        assert await RoundRobinSelector(s, locks).advance(source.source_id, agent.agent_id) == agent.agent_id
        await s.commit()

    assert await flags(session_factory, source.source_id) == [(agent.agent_id, True)]


async def test_first_member_of_empty_pool_is_flagged(factory, session_factory, locks):
    source = await factory.source()
    a, b = await factory.agents(2)

    async with session_factory() as s:
        selector = RoundRobinSelector(s, locks)
        await selector.add_member(source.source_id, b.agent_id)
        await selector.add_member(source.source_id, a.agent_id)

    assert await flags(session_factory, source.source_id) == [(a.agent_id, False), (b.agent_id, True)]


async def test_add_existing_member_fails(factory, session_factory, locks):
    source = await factory.source()
    agent = await factory.agent()
    await factory.pool(source.source_id, [agent.agent_id])

    async with session_factory() as s:
        with pytest.raises(AgentAlreadyInPool):
            await RoundRobinSelector(s, locks).add_member(source.source_id, agent.agent_id)


async def test_add_unknown_agent_fails(factory, session_factory, locks):
    source = await factory.source()
    async with session_factory() as s:
        with pytest.raises(UnknownAgent):
            await RoundRobinSelector(s, locks).add_member(source.source_id, uuid4())


@pytest.mark.parametrize("size", [2, 3, 4])
async def test_removing_flagged_member_reflags_smallest_remaining(factory, session_factory, locks, size):
    source = await factory.source()
    ids = [a.agent_id for a in await factory.agents(size)]
    flagged = ids[-1]
    await factory.pool(source.source_id, ids, flagged=flagged)

    async with session_factory() as s:
        await RoundRobinSelector(s, locks).remove_member(source.source_id, flagged)

    remaining = await flags(session_factory, source.source_id)
    assert [f for _, f in remaining].count(True) == 1
    assert remaining[0] == (ids[0], True)


async def test_removing_last_member_leaves_empty_pool(factory, session_factory, locks):
    source = await factory.source()
    agent = await factory.agent()
    await factory.pool(source.source_id, [agent.agent_id])

    async with session_factory() as s:
        await RoundRobinSelector(s, locks).remove_member(source.source_id, agent.agent_id)

    assert await flags(session_factory, source.source_id) == []


async def test_remove_non_member_fails(factory, session_factory, locks):
    source = await factory.source()
    async with session_factory() as s:
        with pytest.raises(AgentNotInPool):
            await RoundRobinSelector(s, locks).remove_member(source.source_id, uuid4())


async def test_replace_pool_flags_first_in_ring_order(factory, session_factory, locks):
    source = await factory.source()
    old = await factory.agent()
    await factory.pool(source.source_id, [old.agent_id])
    new_ids = [a.agent_id for a in await factory.agents(3)]

    async with session_factory() as s:
        ring = await RoundRobinSelector(s, locks).replace_pool(source.source_id, list(reversed(new_ids)))

    assert [m.agent_id for m, _ in ring] == new_ids
    assert await flags(session_factory, source.source_id) == [
        (new_ids[0], True), (new_ids[1], False), (new_ids[2], False)
    ]


async def test_flagged_ineligible_last_member_wraps_to_start(factory, session_factory, locks):
    source = await factory.source()
    ids = [a.agent_id for a in await factory.agents(3)]
    await factory.pool(source.source_id, ids, flagged=ids[2])
    async with session_factory() as s:
        agent = await s.get(Agent, ids[2])
        agent.is_active = False
        await s.commit()

    async with session_factory() as s:
        chosen = await RoundRobinSelector(s, locks).next_agent(source.source_id)

    assert chosen.agent_id == ids[0]
