"""
Content access policy.

Pure decisions over an actor (or None for anonymous) and a snapshot of a
content item. Nothing here touches the database or raises; services turn a
False into the matching error.

Read rules (first match wins):
    1. PUBLIC                                   -> allow, anonymous included
    2. anonymous                                -> deny
    3. actor owns the item                      -> allow
    4. ORGANIZATION and actor is a member of
       the item's organization (any role)       -> allow
    5.                                          -> deny

Write/delete rules:
    1. anonymous                                -> deny
    2. actor owns the item                      -> allow
    3. actor is OWNER or ADMIN of the item's
       organization                             -> allow
    4.                                          -> deny
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

import sqlalchemy as sa

from second_brain.models.content import ContentItem
from second_brain_shared.schemas.common import MANAGER_ROLES, MembershipRole, Visibility


@dataclass(frozen=True)
class Actor:
    """A resolved, authenticated identity plus its organization roles."""

    user_id: uuid.UUID
    email: str
    email_verified: Optional[datetime] = None
    memberships: dict[uuid.UUID, MembershipRole] = field(default_factory=dict)

    @property
    def is_verified(self) -> bool:
        return self.email_verified is not None

    @property
    def organization_ids(self) -> list[uuid.UUID]:
        return list(self.memberships)

    def role_in(self, organization_id: Optional[uuid.UUID]) -> Optional[MembershipRole]:
        if organization_id is None:
            return None
        return self.memberships.get(organization_id)

    def is_member_of(self, organization_id: Optional[uuid.UUID]) -> bool:
        return self.role_in(organization_id) is not None

    def manages(self, organization_id: Optional[uuid.UUID]) -> bool:
        """True if the actor is OWNER or ADMIN of the organization."""
        return self.role_in(organization_id) in MANAGER_ROLES


class ContentSnapshot(Protocol):
    owner_id: uuid.UUID
    organization_id: Optional[uuid.UUID]
    visibility: str


class TagSnapshot(Protocol):
    organization_id: Optional[uuid.UUID]


def _visibility(item: ContentSnapshot) -> Visibility:
    return Visibility(item.visibility)


# ---------------------------------------------------------------------------
# Single-item decisions
# ---------------------------------------------------------------------------

def can_read(actor: Optional[Actor], item: ContentSnapshot) -> bool:
    visibility = _visibility(item)
    if visibility == Visibility.PUBLIC:
        return True
    if actor is None:
        return False
    if item.owner_id == actor.user_id:
        return True
    if visibility == Visibility.ORGANIZATION and item.organization_id is not None:
        return actor.is_member_of(item.organization_id)
    return False


def can_write(actor: Optional[Actor], item: ContentSnapshot) -> bool:
    if actor is None:
        return False
    if item.owner_id == actor.user_id:
        return True
    return actor.manages(item.organization_id)


def can_delete(actor: Optional[Actor], item: ContentSnapshot) -> bool:
    return can_write(actor, item)


def can_modify_tags(actor: Optional[Actor], item: ContentSnapshot) -> bool:
    return can_write(actor, item)


def can_move_to_organization(
    actor: Optional[Actor],
    item: ContentSnapshot,
    organization_id: Optional[uuid.UUID],
) -> bool:
    """Reassignment check, applied in addition to `can_write`.

    Moving to a different non-null organization requires any membership in the
    destination. Clearing the organization or keeping the current one needs
    nothing extra.
    """
    if organization_id is None or organization_id == item.organization_id:
        return True
    if actor is None:
        return False
    return actor.is_member_of(organization_id)


def tag_in_scope(tag: TagSnapshot, item: ContentSnapshot) -> bool:
    """A tag may be attached if it is global or shares the item's organization."""
    return tag.organization_id is None or tag.organization_id == item.organization_id


# ---------------------------------------------------------------------------
# Listing gate
# ---------------------------------------------------------------------------

def visibility_clause(actor: Optional[Actor]):
    """SQL predicate restricting a ContentItem query to what the actor may read.

    Explicit listing filters are AND-ed onto this; they never replace it.
    """
    public = ContentItem.visibility == Visibility.PUBLIC.value
    if actor is None:
        return public

    org_ids = actor.organization_ids
    if org_ids:
        shared = sa.and_(
            ContentItem.visibility == Visibility.ORGANIZATION.value,
            ContentItem.organization_id.in_(org_ids),
        )
    else:
        shared = sa.false()

    return sa.or_(public, ContentItem.owner_id == actor.user_id, shared)
