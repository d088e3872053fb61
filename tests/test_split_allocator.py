"""
Split allocator tests.

Verifies that:
- Single updates never push an organization's active total over 100%
- Bulk updates isolate failures per organization and per entry
- Auto-balance is deterministic, idempotent and sums to exactly 100%
- Preview is read-only and rounds amounts to cents
- Config, validation, default split and history reads behave
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from agencyops.core.exceptions import (
    CaseNotFoundError,
    MemberNotFoundError,
    NoActiveMembersError,
    OrganizationNotFoundError,
    OverAllocatedError,
    SplitOutOfRangeError,
    ValidationFailedError,
)
from agencyops.models import AuditAction, AuditEntry, MembershipStatus
from agencyops.schemas.audit import SplitUpdateChanges, audit_changes_adapter
from agencyops.schemas.commission import SplitConfigEntry
from agencyops.services.split_allocator import SplitAllocator, projected_totals, validate_percent
from helpers import active_total, count_audit, seed_case, seed_member, seed_org, split_of


async def audit_entries(db_session, action: AuditAction) -> list[AuditEntry]:
    result = await db_session.execute(select(AuditEntry).where(AuditEntry.action == action))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def test_validate_percent_bounds():
    assert validate_percent(Decimal("0")) == Decimal("0")
    assert validate_percent(Decimal("100")) == Decimal("100")
    with pytest.raises(SplitOutOfRangeError):
        validate_percent(Decimal("-0.01"))
    with pytest.raises(SplitOutOfRangeError):
        validate_percent(Decimal("100.01"))
    with pytest.raises(ValidationFailedError):
        validate_percent(Decimal("33.333"))


def test_out_of_range_is_a_validation_failure():
    with pytest.raises(ValidationFailedError) as exc_info:
        validate_percent(Decimal("150"))
    assert exc_info.value.code == "OUT_OF_RANGE"


# ---------------------------------------------------------------------------
# Single update
# ---------------------------------------------------------------------------

async def test_update_over_allocation_is_rejected(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 60, order=0)
    await seed_member(db_session, org, 40, order=1)
    org_id, x_user = org.id, x.user_id

    with pytest.raises(OverAllocatedError) as exc_info:
        await SplitAllocator(db_session).update_member_split(org_id, x_user, Decimal("70"), actor_id)

    err = exc_info.value
    assert err.attempted_total == Decimal("110.00")
    assert err.current_total == Decimal("100.00")
    assert "110.00%" in err.message
    assert "100.00%" in err.message
    assert await split_of(db_session, org_id, x_user) == Decimal("60.00")
    assert await count_audit(db_session) == 0


async def test_update_within_limit_succeeds_and_audits(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 60, order=0)
    await seed_member(db_session, org, 30, order=1)

    member = await SplitAllocator(db_session).update_member_split(
        org.id, x.user_id, Decimal("70"), actor_id
    )

    assert member.split_percent == Decimal("70.00")
    assert await active_total(db_session, org.id) == Decimal("1.0000")

    [entry] = await audit_entries(db_session, AuditAction.SPLIT_UPDATE)
    assert entry.entity_id == x.id
    assert entry.actor_user_id == actor_id
    changes = audit_changes_adapter.validate_python(entry.changes)
    assert isinstance(changes, SplitUpdateChanges)
    assert changes.old_split_percent == Decimal("60.00")
    assert changes.new_split_percent == Decimal("70.00")


async def test_update_checks_range_before_reading_state(db_session, actor_id):
    # The organization does not exist; range is reported first
    with pytest.raises(SplitOutOfRangeError):
        await SplitAllocator(db_session).update_member_split(
            uuid4(), uuid4(), Decimal("101"), actor_id
        )


async def test_update_unknown_member(db_session, actor_id):
    org = await seed_org(db_session)
    await seed_member(db_session, org, 10)
    with pytest.raises(MemberNotFoundError):
        await SplitAllocator(db_session).update_member_split(org.id, uuid4(), Decimal("5"), actor_id)


async def test_update_ignores_inactive_member_splits(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 50, order=0)
    await seed_member(db_session, org, 90, order=1, status=MembershipStatus.INACTIVE)

    member = await SplitAllocator(db_session).update_member_split(
        org.id, x.user_id, Decimal("100"), actor_id
    )
    assert member.split_percent == Decimal("100.00")


async def test_update_inactive_member_is_not_found(db_session, actor_id):
    org = await seed_org(db_session)
    gone = await seed_member(db_session, org, 10, status=MembershipStatus.INACTIVE)
    with pytest.raises(MemberNotFoundError):
        await SplitAllocator(db_session).update_member_split(
            org.id, gone.user_id, Decimal("5"), actor_id
        )


# ---------------------------------------------------------------------------
# Bulk update
# ---------------------------------------------------------------------------

async def test_bulk_rejected_org_does_not_block_independent_org(db_session, actor_id):
    good = await seed_org(db_session, name="Good")
    bad = await seed_org(db_session, name="Bad")
    g1 = await seed_member(db_session, good, 50, order=0)
    g2 = await seed_member(db_session, good, 50, order=1)
    b1 = await seed_member(db_session, bad, 50, order=0)
    await seed_member(db_session, bad, 40, order=1)
    good_id, bad_id = good.id, bad.id
    g1_user, g2_user, b1_user = g1.user_id, g2.user_id, b1.user_id

    response = await SplitAllocator(db_session).bulk_update_splits(
        [
            SplitConfigEntry(user_id=g1_user, organization_id=good_id, split_percent=Decimal("70")),
            SplitConfigEntry(user_id=b1_user, organization_id=bad_id, split_percent=Decimal("70")),
            SplitConfigEntry(user_id=g2_user, organization_id=good_id, split_percent=Decimal("30")),
        ],
        actor_id,
    )

    assert [r.success for r in response.results] == [True, False, True]
    assert [r.user_id for r in response.results] == [g1_user, b1_user, g2_user]
    assert response.results[1].error_code == "OVER_ALLOCATED"
    assert response.succeeded == 2
    assert response.failed == 1

    assert await split_of(db_session, good_id, g1_user) == Decimal("70.00")
    assert await split_of(db_session, good_id, g2_user) == Decimal("30.00")
    assert await split_of(db_session, bad_id, b1_user) == Decimal("50.00")
    assert len(await audit_entries(db_session, AuditAction.SPLIT_UPDATE)) == 2


async def test_bulk_swap_applies_decreases_first(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 80, order=0)
    y = await seed_member(db_session, org, 20, order=1)
    org_id, x_user, y_user = org.id, x.user_id, y.user_id

    # Raising Y first would transiently reach 140%
    response = await SplitAllocator(db_session).bulk_update_splits(
        [
            SplitConfigEntry(user_id=y_user, organization_id=org_id, split_percent=Decimal("60")),
            SplitConfigEntry(user_id=x_user, organization_id=org_id, split_percent=Decimal("40")),
        ],
        actor_id,
    )

    assert response.failed == 0
    assert await split_of(db_session, org_id, x_user) == Decimal("40.00")
    assert await split_of(db_session, org_id, y_user) == Decimal("60.00")


async def test_bulk_unknown_member_fails_only_that_entry(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 10)
    org_id, x_user = org.id, x.user_id
    stranger = uuid4()

    response = await SplitAllocator(db_session).bulk_update_splits(
        [
            SplitConfigEntry(user_id=stranger, organization_id=org_id, split_percent=Decimal("20")),
            SplitConfigEntry(user_id=x_user, organization_id=org_id, split_percent=Decimal("25")),
        ],
        actor_id,
    )

    assert [r.success for r in response.results] == [False, True]
    assert response.results[0].error_code == "MEMBER_NOT_FOUND"
    assert await split_of(db_session, org_id, x_user) == Decimal("25.00")


async def test_bulk_unknown_organization_fails_its_entries(db_session, actor_id):
    response = await SplitAllocator(db_session).bulk_update_splits(
        [SplitConfigEntry(user_id=uuid4(), organization_id=uuid4(), split_percent=Decimal("20"))],
        actor_id,
    )
    assert response.results[0].success is False
    assert response.results[0].error_code == "ORG_NOT_FOUND"


async def test_bulk_out_of_range_rejects_whole_call(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 10)
    org_id, x_user = org.id, x.user_id

    with pytest.raises(SplitOutOfRangeError):
        await SplitAllocator(db_session).bulk_update_splits(
            [
                SplitConfigEntry(user_id=x_user, organization_id=org_id, split_percent=Decimal("20")),
                SplitConfigEntry(user_id=uuid4(), organization_id=org_id, split_percent=Decimal("120")),
            ],
            actor_id,
        )
    assert await split_of(db_session, org_id, x_user) == Decimal("10.00")


async def test_bulk_duplicate_pair_is_rejected(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 10)
    with pytest.raises(ValidationFailedError):
        await SplitAllocator(db_session).bulk_update_splits(
            [
                SplitConfigEntry(user_id=x.user_id, organization_id=org.id, split_percent=Decimal("20")),
                SplitConfigEntry(user_id=x.user_id, organization_id=org.id, split_percent=Decimal("30")),
            ],
            actor_id,
        )
    assert await count_audit(db_session) == 0


# ---------------------------------------------------------------------------
# Auto-balance
# ---------------------------------------------------------------------------

async def test_auto_balance_three_members(db_session, actor_id):
    org = await seed_org(db_session)
    first = await seed_member(db_session, org, 0, order=0)
    second = await seed_member(db_session, org, 0, order=1)
    third = await seed_member(db_session, org, 0, order=2)

    config = await SplitAllocator(db_session).auto_balance(org.id, actor_id)

    assert config.total_split == Decimal("100.00")
    assert config.is_valid is True
    assert await split_of(db_session, org.id, first.user_id) == Decimal("34.00")
    assert await split_of(db_session, org.id, second.user_id) == Decimal("33.00")
    assert await split_of(db_session, org.id, third.user_id) == Decimal("33.00")

    [entry] = await audit_entries(db_session, AuditAction.SPLIT_AUTO_BALANCE)
    assert entry.entity_id == org.id
    assert entry.changes["member_count"] == 3
    assert entry.changes["remainder"] == 1


async def test_auto_balance_is_idempotent(db_session, actor_id):
    org = await seed_org(db_session)
    members = [await seed_member(db_session, org, 5, order=i) for i in range(7)]
    allocator = SplitAllocator(db_session)

    first = await allocator.auto_balance(org.id, actor_id)
    once = {m.user_id: await split_of(db_session, org.id, m.user_id) for m in members}
    second = await allocator.auto_balance(org.id, actor_id)
    twice = {m.user_id: await split_of(db_session, org.id, m.user_id) for m in members}

    assert once == twice
    assert first.total_split == second.total_split == Decimal("100.00")
    assert sum(once.values()) == Decimal("100.00")


async def test_auto_balance_skips_inactive_members(db_session, actor_id):
    org = await seed_org(db_session)
    a = await seed_member(db_session, org, 0, order=0)
    b = await seed_member(db_session, org, 0, order=1)
    gone = await seed_member(db_session, org, 15, order=2, status=MembershipStatus.INACTIVE)

    await SplitAllocator(db_session).auto_balance(org.id, actor_id)

    assert await split_of(db_session, org.id, a.user_id) == Decimal("50.00")
    assert await split_of(db_session, org.id, b.user_id) == Decimal("50.00")
    assert await split_of(db_session, org.id, gone.user_id) == Decimal("15.00")


async def test_auto_balance_without_members(db_session, actor_id):
    org = await seed_org(db_session)
    with pytest.raises(NoActiveMembersError):
        await SplitAllocator(db_session).auto_balance(org.id, actor_id)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

async def test_preview_splits_by_primary_organization(db_session):
    org = await seed_org(db_session, name="Primary")
    owner = await seed_member(db_session, org, 60, order=0)
    await seed_member(db_session, org, 40, order=1)
    await seed_member(db_session, org, 0, order=2)
    case = await seed_case(db_session, owner.user_id)
    audit_before = await count_audit(db_session)

    preview = await SplitAllocator(db_session).preview_split(case.id, Decimal("1000.00"))

    assert preview.organization_id == org.id
    assert preview.organization_name == "Primary"
    assert [line.amount for line in preview.splits] == [Decimal("600.00"), Decimal("400.00")]
    assert [line.percentage for line in preview.splits] == [Decimal("60.00"), Decimal("40.00")]
    assert await count_audit(db_session) == audit_before
    assert await split_of(db_session, org.id, owner.user_id) == Decimal("60.00")


async def test_preview_uses_earliest_active_placement(db_session):
    user_id = uuid4()
    closed = await seed_org(db_session, name="Closed")
    first = await seed_org(db_session, name="First")
    second = await seed_org(db_session, name="Second")
    await seed_member(db_session, closed, 50, order=0, user_id=user_id, status=MembershipStatus.INACTIVE)
    await seed_member(db_session, second, 100, order=2, user_id=user_id)
    await seed_member(db_session, first, 100, order=1, user_id=user_id)
    case = await seed_case(db_session, user_id)

    preview = await SplitAllocator(db_session).preview_split(case.id, Decimal("10"))
    assert preview.organization_id == first.id


async def test_preview_rounds_half_up(db_session):
    org = await seed_org(db_session)
    owner = await seed_member(db_session, org, Decimal("33.33"), order=0)
    case = await seed_case(db_session, owner.user_id)

    preview = await SplitAllocator(db_session).preview_split(case.id, Decimal("100.05"))
    # 100.05 * 0.3333 = 33.346665
    assert preview.splits[0].amount == Decimal("33.35")


async def test_preview_without_organization_pays_owner(db_session):
    owner_id = uuid4()
    case = await seed_case(db_session, owner_id)

    preview = await SplitAllocator(db_session).preview_split(case.id, Decimal("250.50"))

    assert preview.organization_id is None
    [line] = preview.splits
    assert line.user_id == owner_id
    assert line.percentage == Decimal("100")
    assert line.amount == Decimal("250.50")


async def test_preview_unknown_case(db_session):
    with pytest.raises(CaseNotFoundError):
        await SplitAllocator(db_session).preview_split(uuid4(), Decimal("10"))


# ---------------------------------------------------------------------------
# Config, validation, default split, history
# ---------------------------------------------------------------------------

async def test_get_config_orders_by_split(db_session):
    org = await seed_org(db_session)
    small = await seed_member(db_session, org, 10, order=0)
    large = await seed_member(db_session, org, 70, order=1)

    config = await SplitAllocator(db_session).get_config(org.id)

    assert [m.user_id for m in config.members] == [large.user_id, small.user_id]
    assert config.total_split == Decimal("80.00")
    assert config.is_valid is True


async def test_validate_config_flags_unset_splits(db_session):
    org = await seed_org(db_session)
    await seed_member(db_session, org, 50, order=0)
    await seed_member(db_session, org, 0, order=1)

    result = await SplitAllocator(db_session).validate_config(org.id)

    assert result.is_valid is False
    assert result.member_count == 2
    assert result.issues == ["1 member(s) have no commission split configured"]


async def test_config_for_unknown_organization(db_session):
    with pytest.raises(OrganizationNotFoundError):
        await SplitAllocator(db_session).get_config(uuid4())


async def test_set_and_clear_default_split(db_session, actor_id):
    org = await seed_org(db_session)
    allocator = SplitAllocator(db_session)

    response = await allocator.set_default_split(org.id, Decimal("12.5"), actor_id)
    assert response.default_split_percent == Decimal("12.50")

    cleared = await allocator.set_default_split(org.id, None, actor_id)
    assert cleared.default_split_percent is None

    entries = await audit_entries(db_session, AuditAction.DEFAULT_SPLIT_UPDATE)
    assert len(entries) == 2


async def test_split_history_filters_and_limits(db_session, actor_id):
    org = await seed_org(db_session)
    x = await seed_member(db_session, org, 10, order=0)
    allocator = SplitAllocator(db_session)

    await allocator.update_member_split(org.id, x.user_id, Decimal("20"), actor_id)
    await allocator.update_member_split(org.id, x.user_id, Decimal("30"), actor_id)
    await allocator.set_default_split(org.id, Decimal("5"), actor_id)

    history = await allocator.get_split_history(org.id)
    assert history.total == 3
    assert {e.action for e in history.entries} == {
        AuditAction.SPLIT_UPDATE,
        AuditAction.DEFAULT_SPLIT_UPDATE,
    }

    limited = await allocator.get_split_history(org.id, limit=1)
    assert limited.total == 1

    # Out-of-range limits are clamped
    clamped = await allocator.get_split_history(org.id, limit=0)
    assert clamped.total == 1


def test_projected_totals_counts_joining_users():
    class Row:
        def __init__(self, user_id, split):
            self.user_id = user_id
            self.commission_split = split

    existing = Row(uuid4(), Decimal("0.4000"))
    joining = uuid4()

    current, attempted = projected_totals([existing], {joining: Decimal("0.5000")})
    assert current == Decimal("0.4000")
    assert attempted == Decimal("0.9000")
