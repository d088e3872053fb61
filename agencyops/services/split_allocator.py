"""
Commission split business logic.

Single and bulk split updates, auto-balancing, default splits and the
read-only split preview for a case. Every write locks the organization row,
re-reads the active member set and checks that active splits stay within
100% before anything is persisted.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.core.config import settings
from agencyops.core.database import unit_of_work
from agencyops.core.exceptions import (
    AppError,
    CaseNotFoundError,
    MemberNotFoundError,
    NoActiveMembersError,
    OrganizationNotFoundError,
    OverAllocatedError,
    SplitOutOfRangeError,
    ValidationFailedError,
)
from agencyops.core.percent import HUNDRED, has_percent_precision, round_money, to_fraction, to_percent
from agencyops.models.audit_log import AuditAction, AuditEntityType
from agencyops.models.case import Case
from agencyops.models.member import OrganizationMember
from agencyops.models.organization import Organization
from agencyops.repositories.membership_repository import MembershipRepository
from agencyops.repositories.organization_repository import OrganizationRepository
from agencyops.schemas.audit import (
    AuditEntryResponse,
    AuditHistoryResponse,
    DefaultSplitChanges,
    SplitAllocation,
    SplitAutoBalanceChanges,
    SplitUpdateChanges,
)
from agencyops.schemas.commission import (
    BulkSplitResponse,
    BulkSplitResult,
    DefaultSplitResponse,
    MemberResponse,
    OrganizationSplitConfig,
    SplitConfigEntry,
    SplitConfigMember,
    SplitPreviewLine,
    SplitPreviewResponse,
    SplitValidationResult,
)
from agencyops.services.audit_recorder import AuditRecorder

logger = logging.getLogger(__name__)

ONE = Decimal("1")

# Audit actions that make up an organization's split history
SPLIT_HISTORY_ACTIONS = (
    AuditAction.SPLIT_UPDATE,
    AuditAction.SPLIT_AUTO_BALANCE,
    AuditAction.MEMBER_ADD,
    AuditAction.MEMBER_REMOVE,
    AuditAction.MEMBER_REACTIVATE,
    AuditAction.DEFAULT_SPLIT_UPDATE,
)


def validate_percent(value: Decimal, user_id: UUID | None = None) -> Decimal:
    """Reject splits outside [0, 100] or with more than two decimal places."""
    if value.is_nan() or value < 0 or value > HUNDRED:
        raise SplitOutOfRangeError(value, user_id=user_id)
    if not has_percent_precision(value):
        raise ValidationFailedError(
            message=f"Commission split {value} has more than two decimal places",
            details={"value": str(value)},
        )
    return value


def projected_totals(
    members: Iterable[OrganizationMember],
    overrides: Mapping[UUID, Decimal],
) -> tuple[Decimal, Decimal]:
    """
    Return ``(current, attempted)`` active totals as fractions.

    ``overrides`` maps user ids to new fractions; users in it who are not
    among ``members`` are counted as joining.
    """
    current = Decimal("0")
    attempted = Decimal("0")
    seen: set[UUID] = set()
    for member in members:
        split = Decimal(member.commission_split or 0)
        current += split
        attempted += overrides.get(member.user_id, split)
        seen.add(member.user_id)
    for user_id, fraction in overrides.items():
        if user_id not in seen:
            attempted += fraction
    return current, attempted


class SplitAllocator:
    """Keeps each organization's active splits within 100%."""

    def __init__(
        self,
        db: AsyncSession,
        organizations: OrganizationRepository | None = None,
        memberships: MembershipRepository | None = None,
        audit: AuditRecorder | None = None,
    ) -> None:
        self.db = db
        self.organizations = organizations or OrganizationRepository(db)
        self.memberships = memberships or MembershipRepository(db)
        self.audit = audit or AuditRecorder(db)

    # -----------------------------------------------------------------------
    # Allocation check
    # -----------------------------------------------------------------------

    def ensure_within_limit(
        self,
        org_id: UUID,
        members: Iterable[OrganizationMember],
        overrides: Mapping[UUID, Decimal],
    ) -> None:
        """Raise ``OverAllocatedError`` if applying ``overrides`` would exceed 100%."""
        current, attempted = projected_totals(members, overrides)
        if attempted > ONE:
            logger.warning(
                "Rejected split change for org %s: attempted=%s%% current=%s%%",
                org_id,
                to_percent(attempted),
                to_percent(current),
            )
            raise OverAllocatedError(org_id, to_percent(attempted), to_percent(current))

    # -----------------------------------------------------------------------
    # Single update
    # -----------------------------------------------------------------------

    async def update_member_split(
        self, org_id: UUID, user_id: UUID, split_percent: Decimal, actor_id: UUID
    ) -> MemberResponse:
        """
        Set one active member's split.

        - Range is checked before any state is read
        - The projected total substitutes the new value for this member
        - Nothing is written when the total would exceed 100%
        """
        validate_percent(split_percent, user_id=user_id)

        async with unit_of_work(self.db):
            await self._lock_organization(org_id)
            members = await self.memberships.list_active(org_id, for_update=True)
            member = await self._apply_split(org_id, members, user_id, split_percent, actor_id)
            response = MemberResponse.model_validate(member)

        return response

    async def _apply_split(
        self,
        org_id: UUID,
        members: list[OrganizationMember],
        user_id: UUID,
        split_percent: Decimal,
        actor_id: UUID,
    ) -> OrganizationMember:
        member = next((m for m in members if m.user_id == user_id), None)
        if member is None:
            raise MemberNotFoundError(org_id, user_id)

        new_fraction = to_fraction(split_percent)
        self.ensure_within_limit(org_id, members, {user_id: new_fraction})

        old_percent = member.split_percent
        member.commission_split = new_fraction
        await self.db.flush()

        await self.audit.record(
            actor_id=actor_id,
            entity_type=AuditEntityType.MEMBERSHIP,
            entity_id=member.id,
            organization_id=org_id,
            changes=SplitUpdateChanges(
                user_id=user_id,
                membership_id=member.id,
                old_split_percent=old_percent,
                new_split_percent=member.split_percent,
            ),
        )
        logger.info(
            "Split updated: org=%s user=%s %s%% -> %s%% actor=%s",
            org_id,
            user_id,
            old_percent,
            member.split_percent,
            actor_id,
        )
        return member

    # -----------------------------------------------------------------------
    # Bulk update
    # -----------------------------------------------------------------------

    async def bulk_update_splits(
        self, configs: list[SplitConfigEntry], actor_id: UUID
    ) -> BulkSplitResponse:
        """
        Apply split changes spanning several organizations.

        Range errors and duplicate (organization, user) pairs reject the
        whole call before anything is read. Each organization is then
        handled in its own transaction: its batch is accepted or rejected
        as a whole against the 100% limit, and a rejection leaves other
        organizations untouched. Inside an accepted batch each entry
        succeeds or fails on its own.
        """
        seen: set[tuple[UUID, UUID]] = set()
        for entry in configs:
            validate_percent(entry.split_percent, user_id=entry.user_id)
            key = (entry.organization_id, entry.user_id)
            if key in seen:
                raise ValidationFailedError(
                    message=(
                        f"User {entry.user_id} appears more than once for "
                        f"organization {entry.organization_id}"
                    ),
                    details={
                        "organization_id": str(entry.organization_id),
                        "user_id": str(entry.user_id),
                    },
                )
            seen.add(key)

        groups: dict[UUID, list[int]] = defaultdict(list)
        for index, entry in enumerate(configs):
            groups[entry.organization_id].append(index)

        results: list[BulkSplitResult | None] = [None] * len(configs)
        for org_id, indexes in groups.items():
            entries = [configs[i] for i in indexes]
            try:
                group_results = await self._apply_group(org_id, entries, actor_id)
            except AppError as exc:
                logger.warning("Bulk split batch for org %s rejected: %s", org_id, exc)
                group_results = [
                    BulkSplitResult(
                        user_id=entry.user_id,
                        organization_id=org_id,
                        success=False,
                        error=exc.message,
                        error_code=exc.code,
                    )
                    for entry in entries
                ]
            for index, result in zip(indexes, group_results):
                results[index] = result

        succeeded = sum(1 for r in results if r is not None and r.success)
        return BulkSplitResponse(
            results=[r for r in results if r is not None],
            succeeded=succeeded,
            failed=len(configs) - succeeded,
        )

    async def _apply_group(
        self, org_id: UUID, entries: list[SplitConfigEntry], actor_id: UUID
    ) -> list[BulkSplitResult]:
        """One organization's batch, in input order."""
        results: dict[UUID, BulkSplitResult] = {}

        async with unit_of_work(self.db):
            await self._lock_organization(org_id)
            members = await self.memberships.list_active(org_id, for_update=True)
            active_users = {m.user_id for m in members}

            # Entries naming non-members cannot count toward the total
            overrides = {
                entry.user_id: to_fraction(entry.split_percent)
                for entry in entries
                if entry.user_id in active_users
            }
            self.ensure_within_limit(org_id, members, overrides)

            current = {m.user_id: Decimal(m.commission_split or 0) for m in members}

            # Decreases first so every intermediate total stays within the limit
            ordered = sorted(
                entries,
                key=lambda e: to_fraction(e.split_percent) - current.get(e.user_id, Decimal("0")),
            )
            for entry in ordered:
                try:
                    async with unit_of_work(self.db):
                        member = await self._apply_split(
                            org_id, members, entry.user_id, entry.split_percent, actor_id
                        )
                    results[entry.user_id] = BulkSplitResult(
                        user_id=entry.user_id,
                        organization_id=org_id,
                        success=True,
                        member=MemberResponse.model_validate(member),
                    )
                except AppError as exc:
                    logger.warning(
                        "Bulk split entry failed: org=%s user=%s code=%s",
                        org_id,
                        entry.user_id,
                        exc.code,
                    )
                    results[entry.user_id] = BulkSplitResult(
                        user_id=entry.user_id,
                        organization_id=org_id,
                        success=False,
                        error=exc.message,
                        error_code=exc.code,
                    )

        return [results[entry.user_id] for entry in entries]

    # -----------------------------------------------------------------------
    # Auto-balance
    # -----------------------------------------------------------------------

    async def auto_balance(self, org_id: UUID, actor_id: UUID) -> OrganizationSplitConfig:
        """
        Spread 100% evenly over the active members.

        Each member gets ``100 // n`` percent; the first ``100 % n`` members
        in join order get one point more. The outcome depends only on the
        member set, so repeating the call changes nothing.
        """
        async with unit_of_work(self.db):
            await self._lock_organization(org_id)
            members = await self.memberships.list_active(org_id, for_update=True)
            if not members:
                raise NoActiveMembersError(org_id)

            base, remainder = divmod(100, len(members))
            allocations = []
            for index, member in enumerate(members):
                share = Decimal(base + 1 if index < remainder else base)
                old_percent = member.split_percent
                member.commission_split = to_fraction(share)
                allocations.append(
                    SplitAllocation(
                        user_id=member.user_id,
                        old_split_percent=old_percent,
                        new_split_percent=member.split_percent,
                    )
                )
            await self.db.flush()

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org_id,
                organization_id=org_id,
                changes=SplitAutoBalanceChanges(
                    member_count=len(members),
                    base_split_percent=Decimal(base),
                    remainder=remainder,
                    allocations=allocations,
                ),
            )
            config = self._build_config(org_id, members)

        logger.info(
            "Splits auto-balanced: org=%s members=%s base=%s remainder=%s actor=%s",
            org_id,
            len(members),
            base,
            remainder,
            actor_id,
        )
        return config

    # -----------------------------------------------------------------------
    # Default split
    # -----------------------------------------------------------------------

    async def set_default_split(
        self, org_id: UUID, split_percent: Decimal | None, actor_id: UUID
    ) -> DefaultSplitResponse:
        """Set or clear the split applied to members added without one."""
        if split_percent is not None:
            validate_percent(split_percent)

        async with unit_of_work(self.db):
            org = await self._lock_organization(org_id)
            old_percent = org.default_split_percent
            org.default_commission_split = (
                to_fraction(split_percent) if split_percent is not None else None
            )
            await self.db.flush()

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org_id,
                organization_id=org_id,
                changes=DefaultSplitChanges(
                    old_default_percent=old_percent,
                    new_default_percent=org.default_split_percent,
                ),
            )

        logger.info(
            "Default split updated: org=%s %s -> %s actor=%s",
            org_id,
            old_percent,
            org.default_split_percent,
            actor_id,
        )
        return DefaultSplitResponse(
            organization_id=org_id, default_split_percent=org.default_split_percent
        )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def preview_split(self, case_id: UUID, total_commission: Decimal) -> SplitPreviewResponse:
        """
        Show how a commission would be divided for a case. Writes nothing.

        Uses the owner's primary organization (earliest active placement in
        an active organization). Without one, the owner receives 100%.
        """
        case = await self.db.get(Case, case_id)
        if case is None:
            raise CaseNotFoundError(case_id)

        placements = await self.memberships.list_active_for_user(case.user_id)
        if not placements:
            return SplitPreviewResponse(
                case_id=case_id,
                total_commission=total_commission,
                splits=[
                    SplitPreviewLine(
                        user_id=case.user_id,
                        percentage=HUNDRED,
                        amount=round_money(total_commission),
                    )
                ],
            )

        _, org = placements[0]
        members = await self.memberships.list_active(org.id)
        splits = [
            SplitPreviewLine(
                user_id=member.user_id,
                role=member.role,
                percentage=member.split_percent,
                amount=round_money(total_commission * Decimal(member.commission_split)),
            )
            for member in members
            if member.commission_split and member.commission_split > 0
        ]
        return SplitPreviewResponse(
            case_id=case_id,
            total_commission=total_commission,
            organization_id=org.id,
            organization_name=org.name,
            splits=splits,
        )

    async def get_config(self, org_id: UUID) -> OrganizationSplitConfig:
        await self._get_organization(org_id)
        members = await self.memberships.list_active(org_id)
        return self._build_config(org_id, members)

    async def validate_config(self, org_id: UUID) -> SplitValidationResult:
        """Advisory checks; never blocks anything."""
        config = await self.get_config(org_id)

        issues: list[str] = []
        if config.total_split > HUNDRED:
            issues.append(f"Total commission split ({config.total_split}%) exceeds 100%")

        unset = [m for m in config.members if not m.split_percent]
        if unset:
            issues.append(f"{len(unset)} member(s) have no commission split configured")

        return SplitValidationResult(
            organization_id=org_id,
            is_valid=not issues,
            issues=issues,
            total_split=config.total_split,
            member_count=len(config.members),
        )

    async def get_split_history(
        self, org_id: UUID, limit: int | None = None
    ) -> AuditHistoryResponse:
        await self._get_organization(org_id)
        if limit is None:
            limit = settings.SPLIT_HISTORY_DEFAULT_LIMIT
        limit = max(1, min(limit, settings.SPLIT_HISTORY_MAX_LIMIT))

        entries = await self.audit.history(org_id, actions=SPLIT_HISTORY_ACTIONS, limit=limit)
        return AuditHistoryResponse(
            entries=[AuditEntryResponse.model_validate(entry) for entry in entries],
            total=len(entries),
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _build_config(
        org_id: UUID, members: list[OrganizationMember]
    ) -> OrganizationSplitConfig:
        total = to_percent(sum((Decimal(m.commission_split or 0) for m in members), Decimal("0")))
        ordered = sorted(members, key=lambda m: Decimal(m.commission_split or 0), reverse=True)
        return OrganizationSplitConfig(
            organization_id=org_id,
            members=[SplitConfigMember.model_validate(m) for m in ordered],
            total_split=total,
            is_valid=total <= HUNDRED,
        )

    async def _get_organization(self, org_id: UUID) -> Organization:
        org = await self.organizations.get(org_id)
        if org is None:
            raise OrganizationNotFoundError(org_id)
        return org

    async def _lock_organization(self, org_id: UUID) -> Organization:
        # Serializes every allocation change for one organization
        org = await self.organizations.get_for_update(org_id)
        if org is None:
            raise OrganizationNotFoundError(org_id)
        return org
