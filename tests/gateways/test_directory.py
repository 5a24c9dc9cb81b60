"""Tests for the directory and membership adapters."""

from uuid import uuid4

import pytest

from approval_gateways import InMemoryDirectoryGateway, InMemoryMembershipProvider
from approval_gateways.directory import profile_from_record
from approval_kernel.domain.approval import UNKNOWN_USER_NAME, ProjectRole
from approval_kernel.exceptions import GatewayError


class TestProfileFromRecord:

    def test_current_shape(self):
        uid = uuid4()
        profile = profile_from_record(
            {"id": uid, "display_name": "Rita Requester", "email": "rita@example.com"},
        )
        assert profile.id == uid
        assert profile.display_name == "Rita Requester"
        assert profile.email == "rita@example.com"
        assert profile.found

    def test_flat_shape_with_string_id(self):
        uid = uuid4()
        profile = profile_from_record({"id": str(uid), "name": " Alex "})
        assert profile.id == uid
        assert profile.display_name == "Alex"
        assert profile.email == ""

    @pytest.mark.parametrize("key", ["name", "full_name"])
    def test_legacy_meta_shape(self, key):
        profile = profile_from_record({
            "id": uuid4(),
            "raw_user_meta_data": {key: "Blake Reviewer", "email": "blake@example.com"},
        })
        assert profile.display_name == "Blake Reviewer"
        assert profile.email == "blake@example.com"

    def test_top_level_name_wins_over_meta(self):
        profile = profile_from_record({
            "id": uuid4(),
            "display_name": "Current",
            "raw_user_meta_data": {"name": "Legacy"},
        })
        assert profile.display_name == "Current"

    def test_falls_back_to_email_local_part(self):
        profile = profile_from_record({"id": uuid4(), "email": "pat@example.com"})
        assert profile.display_name == "pat"

    def test_nameless_record(self):
        profile = profile_from_record({"id": uuid4(), "raw_user_meta_data": None})
        assert profile.display_name == UNKNOWN_USER_NAME

    @pytest.mark.parametrize("bad_id", [None, "", "not-a-uuid"])
    def test_invalid_id(self, bad_id):
        with pytest.raises(GatewayError) as exc_info:
            profile_from_record({"id": bad_id, "name": "x"})
        assert exc_info.value.gateway == "directory"


class TestInMemoryDirectoryGateway:

    def test_resolves_in_request_order_with_placeholders(self):
        known, other, missing = uuid4(), uuid4(), uuid4()
        gateway = InMemoryDirectoryGateway([{"id": known, "name": "Known"}])
        gateway.add_user(other, "Other", "other@example.com")

        profiles = gateway.resolve_users([missing, known, other])
        assert [p.id for p in profiles] == [missing, known, other]
        assert profiles[0].display_name == UNKNOWN_USER_NAME
        assert not profiles[0].found
        assert profiles[1].display_name == "Known"
        assert profiles[2].email == "other@example.com"

    def test_add_record_replaces_profile(self):
        uid = uuid4()
        gateway = InMemoryDirectoryGateway([{"id": uid, "name": "Old"}])
        gateway.add_record({"id": uid, "name": "New"})
        assert gateway.resolve_users([uid])[0].display_name == "New"

    def test_empty_batch(self):
        assert InMemoryDirectoryGateway().resolve_users([]) == ()


class TestInMemoryMembershipProvider:

    @pytest.fixture
    def provider(self):
        return InMemoryMembershipProvider()

    def test_roles(self, provider):
        owner, admin, member = uuid4(), uuid4(), uuid4()
        provider.add_member("p1", owner, ProjectRole.OWNER)
        provider.add_member("p1", admin, "admin")
        provider.add_member("p1", member)

        assert provider.role_of(owner, "p1") is ProjectRole.OWNER
        assert provider.role_of(admin, "p1") is ProjectRole.ADMIN
        assert provider.role_of(member, "p1") is ProjectRole.MEMBER
        assert provider.role_of(member, "p2") is None

    def test_inactive_member_has_no_role(self, provider):
        uid = uuid4()
        provider.add_member("p1", uid, ProjectRole.ADMIN, active=False)
        assert provider.role_of(uid, "p1") is None
        assert provider.admin_project_ids(uid) == frozenset()
        assert provider.active_member_ids("p1") == ()

    def test_admin_project_ids(self, provider):
        uid = uuid4()
        provider.add_member("p1", uid, ProjectRole.ADMIN)
        provider.add_member("p2", uid, ProjectRole.MEMBER)
        provider.add_member("p3", uid, ProjectRole.OWNER)
        assert provider.admin_project_ids(uid) == frozenset({"p1", "p3"})

    def test_remove_member(self, provider):
        a, b = uuid4(), uuid4()
        provider.add_member("p1", a)
        provider.add_member("p1", b)
        provider.remove_member("p1", a)
        provider.remove_member("p9", a)
        assert provider.active_member_ids("p1") == (b,)

    def test_unknown_role_rejected(self, provider):
        with pytest.raises(ValueError):
            provider.add_member("p1", uuid4(), "superuser")
