"""Directory, entity and membership adapters for the approval kernel."""

from approval_gateways.directory import InMemoryDirectoryGateway, profile_from_record
from approval_gateways.entities import (
    EntityCatalog,
    EntityResolver,
    EntryResolver,
    FormResolver,
    RecordSource,
    SiteDiaryResolver,
    TaskResolver,
)
from approval_gateways.membership import InMemoryMembershipProvider

__all__ = [
    "EntityCatalog",
    "EntityResolver",
    "EntryResolver",
    "FormResolver",
    "InMemoryDirectoryGateway",
    "InMemoryMembershipProvider",
    "RecordSource",
    "SiteDiaryResolver",
    "TaskResolver",
    "profile_from_record",
]
