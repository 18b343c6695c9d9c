"""Scope resolution: which learners may an actor see and act upon.

Rules per role:
- super_admin: unrestricted (``ScopeSet.ids is None``; never enumerated)
- leader: the actor plus everyone whose ``leader_id`` chain reaches the actor
- coach: learners in ``coach_assignments`` for this coach, no recursion
- assistant: accounts the assistant created, optionally only within the
  assistant's own leader org
- anything else: empty

Scope is computed fresh for every request and never cached.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.auth.models import Actor
from libs.auth.roles import ADMIN_ROLES, SystemRole, normalize_role
from libs.common.config import Settings, get_settings
from libs.common.logging import get_logger
from services.members_service.models import Profile
from services.members_service.services import graph_store
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScopeSet:
    """Learner ids an actor may act upon; ``ids=None`` means no filter."""

    ids: Optional[frozenset]
    cycle_detected: bool = False
    truncated: bool = False

    @property
    def unrestricted(self) -> bool:
        return self.ids is None

    def contains(self, user_id: Optional[uuid.UUID]) -> bool:
        if user_id is None:
            return False
        if self.ids is None:
            return True
        return user_id in self.ids


UNRESTRICTED = ScopeSet(ids=None)
EMPTY = ScopeSet(ids=frozenset())


async def walk_leader_tree(
    db: AsyncSession,
    root_id: uuid.UUID,
    max_depth: int,
    max_nodes: int,
) -> ScopeSet:
    """Breadth-first closure over the ``leader_id`` back-edge, one query per level.

    Every profile has a single ``leader_id``, so reaching a node twice means the
    graph has a cycle. Cycles are reported and not re-expanded; hitting either
    cap stops the walk and leaves unexpanded nodes out of scope.
    """
    visited: set[uuid.UUID] = {root_id}
    frontier: list[uuid.UUID] = [root_id]
    cycle_detected = False
    truncated = False
    depth = 0

    while frontier:
        if depth >= max_depth:
            # Only a real truncation if the remaining frontier has children.
            if await graph_store.list_children(db, frontier):
                truncated = True
            break

        next_frontier: list[uuid.UUID] = []
        for child_id, parent_id in await graph_store.list_children(db, frontier):
            if child_id in visited:
                cycle_detected = True
                logger.error(
                    "Leader tree cycle: %s already visited via %s (root %s)",
                    child_id,
                    parent_id,
                    root_id,
                )
                continue
            if len(visited) >= max_nodes:
                truncated = True
                break
            visited.add(child_id)
            next_frontier.append(child_id)

        if truncated:
            break
        frontier = next_frontier
        depth += 1

    if truncated:
        logger.error(
            "Leader tree walk for %s truncated at depth=%d nodes=%d",
            root_id,
            depth,
            len(visited),
        )

    return ScopeSet(
        ids=frozenset(visited), cycle_detected=cycle_detected, truncated=truncated
    )


async def resolve_scope(
    db: AsyncSession,
    actor: Actor,
    settings: Optional[Settings] = None,
) -> ScopeSet:
    """Compute the set of learner ids ``actor`` may act upon.

    Never raises for a known role; unknown roles fail closed with an empty scope.
    """
    settings = settings or get_settings()
    role = normalize_role(actor.role)

    if role is SystemRole.SUPER_ADMIN:
        return UNRESTRICTED

    if role is SystemRole.LEADER:
        return await walk_leader_tree(
            db,
            actor.id,
            max_depth=settings.LEADER_TREE_MAX_DEPTH,
            max_nodes=settings.LEADER_TREE_MAX_NODES,
        )

    if role is SystemRole.COACH:
        ids = await graph_store.fetch_coach_assigned_user_ids(db, actor.id)
        return ScopeSet(ids=frozenset(ids))

    if role is SystemRole.ASSISTANT:
        leader_id = actor.leader_id if settings.ASSISTANT_SCOPE_SAME_LEADER else None
        limit = settings.ASSISTANT_SCOPE_MAX_NODES
        ids, truncated = await graph_store.fetch_assistant_created_user_ids(
            db, actor.id, limit, leader_id=leader_id
        )
        if truncated:
            logger.error(
                "Assistant scope for %s truncated at %d accounts", actor.id, limit
            )
        return ScopeSet(ids=frozenset(ids), truncated=truncated)

    return EMPTY


async def iter_leader_ancestors(
    db: AsyncSession,
    subject: Profile,
    max_depth: int,
) -> list[Profile]:
    """Profiles up the subject's ``leader_id`` chain, nearest first."""
    ancestors: list[Profile] = []
    seen: set[uuid.UUID] = {subject.id}
    next_id = subject.leader_id

    for _ in range(max_depth):
        if next_id is None:
            break
        if next_id in seen:
            logger.error(
                "Leader chain cycle above %s at %s", subject.id, next_id
            )
            break
        seen.add(next_id)
        profile = await graph_store.get_profile(db, next_id)
        if profile is None:
            break
        ancestors.append(profile)
        next_id = profile.leader_id

    return ancestors


async def reviewers_for_subject(
    db: AsyncSession,
    subject: Profile,
    reviewer_roles: frozenset,
    settings: Optional[Settings] = None,
) -> list[uuid.UUID]:
    """Everyone whose scope contains ``subject`` and who may review the kind.

    Leaders up the chain, the assigned coach, the creating assistant and all
    super-admins. Deduplicated, subject excluded, order stable.
    """
    settings = settings or get_settings()
    recipients: list[uuid.UUID] = []

    for ancestor in await iter_leader_ancestors(
        db, subject, settings.LEADER_TREE_MAX_DEPTH
    ):
        role = ancestor.system_role
        if role in ADMIN_ROLES and role in reviewer_roles:
            recipients.append(ancestor.id)

    if SystemRole.COACH in reviewer_roles:
        coach_id = await graph_store.get_assigned_coach_id(db, subject.id)
        if coach_id is not None:
            recipients.append(coach_id)

    if SystemRole.ASSISTANT in reviewer_roles and subject.created_by is not None:
        assistant = await graph_store.get_profile(db, subject.created_by)
        if assistant is not None and assistant.system_role is SystemRole.ASSISTANT:
            same_org = (
                not settings.ASSISTANT_SCOPE_SAME_LEADER
                or assistant.leader_id is None
                or assistant.leader_id == subject.leader_id
            )
            if same_org:
                recipients.append(assistant.id)

    if SystemRole.SUPER_ADMIN in reviewer_roles:
        recipients.extend(await graph_store.fetch_super_admin_ids(db))

    return [
        user_id for user_id in dict.fromkeys(recipients) if user_id != subject.id
    ]
