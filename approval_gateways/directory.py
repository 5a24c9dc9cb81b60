"""
Directory adapter: user ids to display names and emails.

Contract:
    resolve_users() returns one UserProfile per requested id, in request
    order.  Unknown ids get a placeholder; they never fail the batch.

Architecture: approval_gateways.  Record-shape normalization lives here so
the kernel only ever sees the typed UserProfile contract.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import UUID

from approval_kernel.domain.approval import UNKNOWN_USER_NAME, UserProfile
from approval_kernel.exceptions import GatewayError

_GATEWAY = "directory"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def profile_from_record(record: Mapping[str, Any]) -> UserProfile:
    """Normalize a directory record into a UserProfile.

    Accepts the current ``{id, display_name, email}`` shape, the flat
    ``{id, name, email}`` shape and the legacy
    ``{id, email?, raw_user_meta_data: {name | full_name, email}}`` shape.
    The display name falls back to the email's local part, then to
    ``UNKNOWN_USER_NAME``.
    """
    raw_id = record.get("id")
    try:
        user_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
    except (TypeError, ValueError):
        raise GatewayError(_GATEWAY, f"record has no valid id: {raw_id!r}") from None

    meta = record.get("raw_user_meta_data")
    if not isinstance(meta, Mapping):
        meta = {}

    name = (
        _text(record.get("display_name"))
        or _text(record.get("name"))
        or _text(meta.get("name"))
        or _text(meta.get("full_name"))
    )
    email = _text(record.get("email")) or _text(meta.get("email"))
    if not name and email:
        name = email.split("@", 1)[0]
    return UserProfile(
        id=user_id,
        display_name=name or UNKNOWN_USER_NAME,
        email=email,
    )


class InMemoryDirectoryGateway:
    """Directory backed by a list of user records (any supported shape)."""

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()):
        self._profiles: dict[UUID, UserProfile] = {}
        for record in records:
            self.add_record(record)

    def add_record(self, record: Mapping[str, Any]) -> UserProfile:
        profile = profile_from_record(record)
        self._profiles[profile.id] = profile
        return profile

    def add_user(self, user_id: UUID, display_name: str, email: str = "") -> UserProfile:
        profile = UserProfile(id=user_id, display_name=display_name, email=email)
        self._profiles[user_id] = profile
        return profile

    def resolve_users(
        self, user_ids: Sequence[UUID], timeout: float | None = None,
    ) -> tuple[UserProfile, ...]:
        return tuple(
            self._profiles.get(uid) or UserProfile.placeholder(uid)
            for uid in user_ids
        )
