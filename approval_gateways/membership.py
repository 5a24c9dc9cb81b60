"""
Membership adapter: project roles for the permission gate.

Architecture: approval_gateways.  Implements the kernel's
MembershipProvider protocol over an in-process table.
"""

from __future__ import annotations

from uuid import UUID

from approval_kernel.domain.approval import PROJECT_ADMIN_ROLES, ProjectRole


class InMemoryMembershipProvider:
    """Project membership table: (project, user) -> role, active flag."""

    def __init__(self) -> None:
        self._members: dict[str, dict[UUID, tuple[ProjectRole, bool]]] = {}

    def add_member(
        self,
        project_id: str,
        user_id: UUID,
        role: ProjectRole | str = ProjectRole.MEMBER,
        active: bool = True,
    ) -> None:
        self._members.setdefault(project_id, {})[user_id] = (
            ProjectRole(role), active,
        )

    def remove_member(self, project_id: str, user_id: UUID) -> None:
        self._members.get(project_id, {}).pop(user_id, None)

    def role_of(self, user_id: UUID, project_id: str) -> ProjectRole | None:
        entry = self._members.get(project_id, {}).get(user_id)
        if entry is None or not entry[1]:
            return None
        return entry[0]

    def admin_project_ids(self, user_id: UUID) -> frozenset[str]:
        admin = set()
        for project_id, members in self._members.items():
            entry = members.get(user_id)
            if entry is not None and entry[1] and entry[0] in PROJECT_ADMIN_ROLES:
                admin.add(project_id)
        return frozenset(admin)

    def active_member_ids(self, project_id: str) -> tuple[UUID, ...]:
        return tuple(
            user_id
            for user_id, (_, active) in self._members.get(project_id, {}).items()
            if active
        )
