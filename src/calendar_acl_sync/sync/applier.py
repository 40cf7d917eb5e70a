"""Apply participant changes through the calendar ACL adapter."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..models.participant import CurrentPermission, Participant
from ..utils.logging import BoundLogger, bind_logger
from ..writers.base import CalendarAclAdapter


@dataclass
class ApplyOutcome:
    """Result of pushing a set of changes to the calendar service."""

    applied_count: int = 0
    errors: list[str] = field(default_factory=list)


class BatchApplier:
    """Push grants (and optionally revocations) to a calendar."""

    def __init__(
        self,
        adapter: CalendarAclAdapter,
        logger: Optional[logging.Logger] = None,
    ):
        self.adapter = adapter
        self.logger: BoundLogger = bind_logger(logger, __name__)

    async def apply_additions(
        self, calendar_id: str, additions: list[Participant]
    ) -> ApplyOutcome:
        """
        Grant calendar access to new participants.

        Teachers become writers and students become readers. All items go to the
        adapter in one call; splitting into service-sized batches is its job.

        Args:
            calendar_id: Calendar identifier
            additions: Participants to grant

        Returns:
            ApplyOutcome with the count the adapter reports as created

        Raises:
            ACLServiceError: If the adapter call fails as a whole
        """
        if not additions:
            return ApplyOutcome()

        items = [{"user_id": p.user_id, "role": p.acl_role.value} for p in additions]
        response = await self.adapter.batch_create_calendar_permissions_limit(
            calendar_id, items
        )

        outcome = ApplyOutcome(
            applied_count=len(response.get("items") or []),
            errors=[str(e) for e in response.get("errors") or []],
        )
        self.logger.debug(
            f"Granted {outcome.applied_count}/{len(items)} permissions on {calendar_id}"
        )
        for error in outcome.errors:
            self.logger.error(f"Permission grant error on {calendar_id}: {error}")
        return outcome

    async def apply_removals(
        self, calendar_id: str, removals: list[CurrentPermission]
    ) -> ApplyOutcome:
        """
        Revoke calendar access of users no longer on the roster.

        Only writer/reader entries are revoked; other roles (the calendar owner)
        are left alone. A failed deletion is recorded and the rest continue.

        Args:
            calendar_id: Calendar identifier
            removals: Permissions to revoke

        Returns:
            ApplyOutcome with the number of permissions actually deleted
        """
        outcome = ApplyOutcome()
        for perm in removals:
            if not perm.is_managed:
                self.logger.debug(f"Keeping {perm.role} permission of {perm.user_id}")
                continue
            try:
                await self.adapter.delete_calendar_permission(
                    calendar_id, perm.user_id, perm.permission_id
                )
                outcome.applied_count += 1
            except Exception as e:
                error_msg = f"Failed to revoke {perm.user_id}: {e}"
                self.logger.warning(error_msg)
                outcome.errors.append(error_msg)
        return outcome
