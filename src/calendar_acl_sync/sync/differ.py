"""Participant diff between the roster and the calendar ACL."""

from dataclasses import dataclass, field

from ..models.participant import CurrentPermission, Participant


@dataclass(frozen=True)
class Diff:
    """Changes needed to make the calendar ACL match the roster."""

    to_add: list[Participant] = field(default_factory=list)
    to_remove: list[CurrentPermission] = field(default_factory=list)
    # Same user on both sides, ACL role not the one the roster role maps to
    role_mismatches: list[tuple[Participant, CurrentPermission]] = field(
        default_factory=list
    )

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def diff(current: list[CurrentPermission], desired: list[Participant]) -> Diff:
    """
    Compare current calendar permissions with the desired participants.

    Users are matched by ``user_id`` only. A role difference for a user present
    on both sides is reported in ``role_mismatches`` and never turns into an
    addition or removal.

    Args:
        current: Permissions reported by the calendar service
        desired: Participants read from the roster

    Returns:
        Diff with additions in roster order and removals in ACL order
    """
    current_by_user = {perm.user_id: perm for perm in current}
    desired_ids = {p.user_id for p in desired}

    to_add = []
    role_mismatches = []
    for participant in desired:
        perm = current_by_user.get(participant.user_id)
        if perm is None:
            to_add.append(participant)
        elif perm.role != participant.acl_role.value:
            role_mismatches.append((participant, perm))

    to_remove = [perm for perm in current if perm.user_id not in desired_ids]

    return Diff(to_add=to_add, to_remove=to_remove, role_mismatches=role_mismatches)
