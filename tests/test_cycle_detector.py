"""
Cycle detection tests.

Verifies that:
- A parent that is the subject or one of its descendants is reported as a cycle
- Unrelated parents are not
- Already-corrupt parent chains fail closed, or pass when fail_closed is off
- The depth bound is enforced without recursion
"""

import pytest

from agencyops.core.exceptions import CyclicHierarchyError, HierarchyDepthExceededError
from agencyops.repositories.organization_repository import OrganizationRepository
from agencyops.services.cycle_detector import CycleDetector
from helpers import seed_org


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def build_chain(db_session, length: int):
    """Root first: chain[i + 1].parent_id == chain[i].id."""
    chain = [await seed_org(db_session, name="Level 0")]
    for level in range(1, length):
        chain.append(await seed_org(db_session, name=f"Level {level}", parent=chain[-1]))
    return chain


def detector(db_session, **kwargs) -> CycleDetector:
    return CycleDetector(OrganizationRepository(db_session), **kwargs)


# ---------------------------------------------------------------------------
# Cycle checks
# ---------------------------------------------------------------------------

async def test_ancestor_as_subject_is_a_cycle(db_session):
    a, b, c = await build_chain(db_session, 3)
    # Moving A under C would make A its own ancestor
    assert await detector(db_session).would_create_cycle(c.id, a.id) is True
    assert await detector(db_session).would_create_cycle(b.id, a.id) is True


async def test_same_node_is_a_cycle(db_session):
    org = await seed_org(db_session)
    assert await detector(db_session).would_create_cycle(org.id, org.id) is True


async def test_descendant_subject_is_not_a_cycle(db_session):
    a, b, c = await build_chain(db_session, 3)
    # Moving C under A only shortens the chain
    assert await detector(db_session).would_create_cycle(a.id, c.id) is False


async def test_unrelated_trees_are_not_a_cycle(db_session):
    left = await build_chain(db_session, 3)
    right = await build_chain(db_session, 2)
    assert await detector(db_session).would_create_cycle(left[-1].id, right[0].id) is False


async def test_verify_chain_accepts_a_healthy_chain(db_session):
    chain = await build_chain(db_session, 4)
    await detector(db_session).verify_chain(chain[-1].id)


# ---------------------------------------------------------------------------
# Corrupt data
# ---------------------------------------------------------------------------

async def make_loop(db_session):
    x = await seed_org(db_session, name="X")
    y = await seed_org(db_session, name="Y", parent=x)
    x.parent_id = y.id
    await db_session.commit()
    return x, y


async def test_existing_loop_fails_closed(db_session):
    x, y = await make_loop(db_session)
    unrelated = await seed_org(db_session, name="Unrelated")

    with pytest.raises(CyclicHierarchyError):
        await detector(db_session, fail_closed=True).would_create_cycle(x.id, unrelated.id)

    with pytest.raises(CyclicHierarchyError):
        await detector(db_session, fail_closed=True).verify_chain(y.id)


async def test_existing_loop_is_reported_acyclic_when_fail_open(db_session):
    x, _ = await make_loop(db_session)
    unrelated = await seed_org(db_session, name="Unrelated")

    result = await detector(db_session, fail_closed=False).would_create_cycle(x.id, unrelated.id)
    assert result is False


async def test_subject_inside_existing_loop_is_still_found(db_session):
    x, y = await make_loop(db_session)
    assert await detector(db_session, fail_closed=True).would_create_cycle(x.id, y.id) is True


# ---------------------------------------------------------------------------
# Depth bound
# ---------------------------------------------------------------------------

async def test_chain_within_bound_terminates(db_session):
    chain = await build_chain(db_session, 3)
    other = await seed_org(db_session, name="Other")
    result = await detector(db_session, max_depth=3).would_create_cycle(chain[-1].id, other.id)
    assert result is False


async def test_chain_beyond_bound_fails_closed(db_session):
    chain = await build_chain(db_session, 5)
    other = await seed_org(db_session, name="Other")

    with pytest.raises(HierarchyDepthExceededError) as exc_info:
        await detector(db_session, max_depth=3, fail_closed=True).would_create_cycle(
            chain[-1].id, other.id
        )
    assert exc_info.value.details["max_depth"] == 3


async def test_chain_beyond_bound_passes_when_fail_open(db_session):
    chain = await build_chain(db_session, 5)
    # The root is out of reach, so even a real ancestor goes unnoticed
    result = await detector(db_session, max_depth=3, fail_closed=False).would_create_cycle(
        chain[-1].id, chain[0].id
    )
    assert result is False
