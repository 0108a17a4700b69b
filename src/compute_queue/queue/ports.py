"""Collaborator contracts consumed by the task queue service."""

from __future__ import annotations

from typing import Protocol
from uuid import uuid4

from compute_queue.config import OrganizationSettings
from compute_queue.queue.models import Component, Organization


class UuidFactory(Protocol):
    """Source of globally unique task identifiers."""

    def create(self) -> str:
        """Return a new unique identifier."""


class ComponentResolver(Protocol):
    """Lookup of the project/component owning a task."""

    def find_by_uuid(self, uuid: str) -> Component | None:
        """Return the component or None when it does not exist."""


class DefaultOrganizationProvider(Protocol):
    """Organization used for tasks whose component does not resolve."""

    def get(self) -> Organization:
        """Return the default organization."""


class Uuid4Factory:
    def create(self) -> str:
        return str(uuid4())


class StaticDefaultOrganizationProvider:
    """Default organization taken from settings."""

    def __init__(self, organization: Organization) -> None:
        self._organization = organization

    @classmethod
    def from_settings(cls, settings: OrganizationSettings) -> StaticDefaultOrganizationProvider:
        return cls(
            Organization(
                uuid=settings.default_organization_uuid,
                key=settings.default_organization_key,
                name=settings.default_organization_name,
            ),
        )

    def get(self) -> Organization:
        return self._organization
