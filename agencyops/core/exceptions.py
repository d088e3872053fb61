"""
Application exceptions.

Every failure the engine reports to a caller is an ``AppError`` subclass with
a machine-readable code, a human-readable message and structured details.

Hierarchy:
- AppError
  ├── ValidationFailedError
  │   ├── SplitOutOfRangeError
  │   └── SelfParentError
  ├── InvalidActorError
  ├── NotFoundError
  │   ├── OrganizationNotFoundError
  │   ├── ParentNotFoundError
  │   ├── MemberNotFoundError
  │   └── CaseNotFoundError
  ├── CyclicHierarchyError
  ├── HierarchyDepthExceededError
  ├── HasActiveChildrenError
  ├── HasActiveMembersError
  ├── OverAllocatedError
  ├── AlreadyMemberError
  ├── NoActiveMembersError
  ├── OrganizationInactiveError
  └── ConcurrentModificationError
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import status


class AppError(Exception):
    """Base exception for application errors."""

    code: str = "APP_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.message = message or self.message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to the API's ``detail`` payload."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationFailedError(AppError):
    """Malformed or out-of-range input, rejected before current state is read."""

    code = "VALIDATION_FAILED"
    message = "Validation failed"
    status_code = 422


class SplitOutOfRangeError(ValidationFailedError):
    code = "OUT_OF_RANGE"
    message = "Commission split must be between 0 and 100"

    def __init__(self, value: Decimal, user_id: UUID | None = None) -> None:
        details: dict[str, Any] = {"value": str(value)}
        if user_id is not None:
            details["user_id"] = str(user_id)
            message = f"Invalid split for user {user_id}: {value} is not between 0 and 100"
        else:
            message = f"Commission split must be between 0 and 100, got {value}"
        super().__init__(message=message, details=details)


class SelfParentError(ValidationFailedError):
    code = "SELF_PARENT"
    message = "Organization cannot be its own parent"

    def __init__(self, organization_id: UUID) -> None:
        super().__init__(details={"organization_id": str(organization_id)})


class InvalidActorError(AppError):
    code = "INVALID_ACTOR"
    message = "A resolved actor identity is required"
    status_code = status.HTTP_401_UNAUTHORIZED


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFoundError(AppError):
    """Base exception for missing resources."""

    code = "NOT_FOUND"
    message = "Resource not found"
    status_code = status.HTTP_404_NOT_FOUND
    resource = "Resource"

    def __init__(self, identifier: UUID | str, details: dict[str, Any] | None = None) -> None:
        self.identifier = identifier
        full_details = {"resource": self.resource, "identifier": str(identifier)}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"{self.resource} not found: {identifier}",
            details=full_details,
        )


class OrganizationNotFoundError(NotFoundError):
    code = "ORG_NOT_FOUND"
    resource = "Organization"


class ParentNotFoundError(NotFoundError):
    code = "PARENT_NOT_FOUND"
    resource = "Parent organization"


class MemberNotFoundError(NotFoundError):
    code = "MEMBER_NOT_FOUND"
    resource = "Organization member"

    def __init__(self, organization_id: UUID, user_id: UUID) -> None:
        super().__init__(
            identifier=user_id,
            details={"organization_id": str(organization_id), "user_id": str(user_id)},
        )


class CaseNotFoundError(NotFoundError):
    code = "CASE_NOT_FOUND"
    resource = "Case"


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

class CyclicHierarchyError(AppError):
    code = "CYCLIC_HIERARCHY"
    message = "Circular organization hierarchy detected"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID, parent_id: UUID) -> None:
        super().__init__(
            message=(
                f"Placing organization {organization_id} under {parent_id} "
                "would create a circular hierarchy"
            ),
            details={
                "organization_id": str(organization_id),
                "parent_id": str(parent_id),
            },
        )


class HierarchyDepthExceededError(AppError):
    code = "HIERARCHY_TOO_DEEP"
    message = "Organization hierarchy exceeds the maximum supported depth"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, start_id: UUID, max_depth: int) -> None:
        super().__init__(
            message=(
                f"Ancestor chain of {start_id} did not reach a root "
                f"within {max_depth} levels"
            ),
            details={"start_id": str(start_id), "max_depth": max_depth},
        )


class HasActiveChildrenError(AppError):
    code = "HAS_ACTIVE_CHILDREN"
    message = (
        "Cannot delete organization with child organizations. "
        "Please reassign or delete child organizations first."
    )
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID, count: int) -> None:
        super().__init__(
            details={"organization_id": str(organization_id), "active_children": count}
        )


class HasActiveMembersError(AppError):
    code = "HAS_ACTIVE_MEMBERS"
    message = (
        "Cannot delete organization with active members. "
        "Please reassign or remove members first."
    )
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID, count: int) -> None:
        super().__init__(
            details={"organization_id": str(organization_id), "active_members": count}
        )


class OrganizationInactiveError(AppError):
    code = "ORG_INACTIVE"
    message = "Organization is inactive"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID) -> None:
        super().__init__(
            message=f"Organization {organization_id} is inactive",
            details={"organization_id": str(organization_id)},
        )


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------

class OverAllocatedError(AppError):
    code = "OVER_ALLOCATED"
    message = "Commission splits would exceed 100%"
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        organization_id: UUID,
        attempted_total: Decimal,
        current_total: Decimal,
    ) -> None:
        self.attempted_total = attempted_total
        self.current_total = current_total
        super().__init__(
            message=(
                f"Cannot update commission splits for organization {organization_id}: "
                f"total would be {attempted_total:.2f}% which exceeds 100%. "
                f"Current total is {current_total:.2f}%."
            ),
            details={
                "organization_id": str(organization_id),
                "attempted_total": f"{attempted_total:.2f}",
                "current_total": f"{current_total:.2f}",
            },
        )


class AlreadyMemberError(AppError):
    code = "ALREADY_MEMBER"
    message = "User is already a member of this organization"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID, user_id: UUID) -> None:
        super().__init__(
            details={"organization_id": str(organization_id), "user_id": str(user_id)}
        )


class NoActiveMembersError(AppError):
    code = "NO_ACTIVE_MEMBERS"
    message = "No active members in organization"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, organization_id: UUID) -> None:
        super().__init__(details={"organization_id": str(organization_id)})


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ConcurrentModificationError(AppError):
    """The store aborted the transaction; the caller may retry."""

    code = "CONFLICT"
    message = "The data was modified concurrently, please retry"
    status_code = status.HTTP_409_CONFLICT
    retryable = True
