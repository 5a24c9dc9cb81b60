"""
Entity adapters: approval targets to titles and preview payloads.

Contract:
    One EntityResolver per entity kind, selected by the EntityType tag
    through EntityCatalog.  A missing target yields
    ``EntityPreview.not_found`` (a marker, not an exception) so an approval
    whose target was deleted can still be rendered.  Failures of the
    underlying record source surface as GatewayError.

Architecture: approval_gateways.  No DB or kernel-service imports; record
sources are anything with a ``get(entity_id)`` method (a dict works).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from approval_kernel.domain.approval import EntityPreview, EntityType
from approval_kernel.exceptions import GatewayError

_GATEWAY = "entity"


class RecordSource(Protocol):
    """Lookup of raw entity records by id."""

    def get(self, entity_id: str) -> Mapping[str, Any] | None:
        ...


class EntityResolver(ABC):
    """Resolves one kind of entity to a preview."""

    entity_type: EntityType

    def __init__(self, source: RecordSource):
        self._source = source

    def resolve(self, entity_id: str) -> EntityPreview:
        try:
            row = self._source.get(entity_id)
        except Exception as exc:
            raise GatewayError(
                _GATEWAY, f"{self.entity_type.value} {entity_id}: {exc}",
            ) from exc
        if row is None:
            return EntityPreview.not_found(self.entity_type, entity_id)
        return EntityPreview(
            entity_type=self.entity_type,
            entity_id=entity_id,
            title=self.title(entity_id, row),
            payload=self.payload(row),
        )

    @abstractmethod
    def title(self, entity_id: str, row: Mapping[str, Any]) -> str:
        ...

    def payload(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return dict(row)


class FormResolver(EntityResolver):
    entity_type = EntityType.FORM

    def title(self, entity_id, row):
        return row.get("name") or f"Form #{entity_id}"

    def payload(self, row):
        return {
            "name": row.get("name"),
            "description": row.get("description"),
            "field_count": len(row.get("fields") or ()),
        }


class SiteDiaryResolver(EntityResolver):
    entity_type = EntityType.SITE_DIARY

    def title(self, entity_id, row):
        name = row.get("name") or f"Site diary #{entity_id}"
        date = row.get("date")
        return f"{name} ({date})" if date else name

    def payload(self, row):
        return {
            "name": row.get("name"),
            "date": row.get("date"),
            "template_id": row.get("template_id"),
            "answers": dict(row.get("answers") or {}),
        }


class EntryResolver(EntityResolver):
    entity_type = EntityType.ENTRY

    def title(self, entity_id, row):
        return row.get("name") or f"Entry #{entity_id}"


class TaskResolver(EntityResolver):
    entity_type = EntityType.TASK

    def title(self, entity_id, row):
        return row.get("title") or f"Task #{entity_id}"

    def payload(self, row):
        return {
            "title": row.get("title"),
            "status": row.get("status"),
            "priority": row.get("priority"),
            "due_date": row.get("due_date"),
        }


class EntityCatalog:
    """EntityGateway that dispatches to one resolver per EntityType."""

    def __init__(self, resolvers: Iterable[EntityResolver] = ()):
        self._resolvers: dict[EntityType, EntityResolver] = {}
        for resolver in resolvers:
            self.register(resolver)

    def register(self, resolver: EntityResolver) -> None:
        self._resolvers[resolver.entity_type] = resolver

    def resolve_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        timeout: float | None = None,
    ) -> EntityPreview:
        resolver = self._resolvers.get(entity_type)
        if resolver is None:
            raise GatewayError(
                _GATEWAY, f"no resolver registered for {entity_type.value}",
            )
        return resolver.resolve(str(entity_id))

    @classmethod
    def in_memory(
        cls,
        forms: Mapping[str, Mapping[str, Any]] | None = None,
        site_diaries: Mapping[str, Mapping[str, Any]] | None = None,
        entries: Mapping[str, Mapping[str, Any]] | None = None,
        tasks: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> EntityCatalog:
        """Catalog over plain dicts keyed by entity id (tests, local dev)."""
        return cls([
            FormResolver(forms if forms is not None else {}),
            SiteDiaryResolver(site_diaries if site_diaries is not None else {}),
            EntryResolver(entries if entries is not None else {}),
            TaskResolver(tasks if tasks is not None else {}),
        ])
