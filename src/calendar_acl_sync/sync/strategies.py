"""Reconcile policies for calendar participant sync."""

from dataclasses import dataclass
from enum import Enum


class RoleMismatchPolicy(str, Enum):
    """What to do when a user's ACL role differs from their roster role."""

    IGNORE = "ignore"
    REPORT = "report"


@dataclass(frozen=True)
class ReconcilePolicy:
    """
    Toggles applied by the reconciler after the diff is computed.

    Attributes:
        apply_removals: Revoke permissions of users missing from the roster
        role_mismatch: Handling of users whose ACL role is out of date
        dry_run: Compute and log the diff without calling the calendar API
    """

    apply_removals: bool = False
    role_mismatch: RoleMismatchPolicy = RoleMismatchPolicy.IGNORE
    dry_run: bool = False

    @property
    def reports_role_mismatches(self) -> bool:
        return self.role_mismatch == RoleMismatchPolicy.REPORT
