"""
Announcement deduplication over the database.

Near-identical announcements published by different agencies are collected
into a ProjectGroup. Each group has exactly one canonical member (the most
complete, oldest record); blank fields on the canonical record are
back-filled from the other members.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from support_crawler.db.models import ProjectGroup, SupportProject, make_group_key

from .models import ReviewStatus, SimilarityResult
from .normalizer import normalize_project
from .similarity import (
    AUTO_MERGE_THRESHOLD,
    NATIONWIDE_REGION,
    calculate_similarity,
    completeness_score,
    regions_compatible,
    years_compatible,
)

logger = structlog.get_logger(__name__)

# Canonical fields back-filled from other group members
SUPPLEMENTARY_FIELDS = (
    "description",
    "eligibility",
    "application_process",
    "evaluation_criteria",
    "contact_info",
    "detail_url",
)

UPSERT_DIALECTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


@dataclass
class DeduplicationOutcome:
    """What happened to a project during deduplication."""
    action: str  # new, merged, review, refreshed
    group_id: Optional[uuid.UUID]
    is_canonical: bool
    merge_confidence: float
    duplicates_found: int = 0


def region_scope(region_a: Optional[str], region_b: Optional[str]) -> str:
    """Region a matched pair belongs to: the non-nationwide side, if any."""
    for region in (region_a, region_b):
        if region and region != NATIONWIDE_REGION:
            return region
    return NATIONWIDE_REGION


def select_canonical(members: list, now: Optional[datetime] = None):
    """
    Most complete member; earlier members win ties.

    Members are expected in creation order.
    """
    if not members:
        raise ValueError("Cannot select a canonical member of an empty group")

    return max(members, key=lambda member: completeness_score(member, now))


def merge_supplementary(canonical, others: list) -> dict:
    """
    Back-fill blank canonical fields from other members.

    Attachment URL lists are unioned without duplicates.

    Returns:
        Provenance: field -> id of the member it came from (attachment_urls
        maps to the list of contributing ids); empty when nothing changed
    """
    provenance: dict = {}

    for field_name in SUPPLEMENTARY_FIELDS:
        if getattr(canonical, field_name, None):
            continue
        for other in others:
            value = getattr(other, field_name, None)
            if value:
                setattr(canonical, field_name, value)
                provenance[field_name] = str(other.id)
                break

    urls = list(canonical.attachment_urls or [])
    seen = set(urls)
    contributors = []
    for other in others:
        added = [url for url in (other.attachment_urls or []) if url not in seen]
        if added:
            urls.extend(added)
            seen.update(added)
            contributors.append(str(other.id))

    if contributors:
        # New list object so the JSON column is flagged dirty
        canonical.attachment_urls = urls
        provenance["attachment_urls"] = contributors

    return provenance


def ensure_normalized(project: SupportProject) -> None:
    """Fill normalized_name/project_year from the title when missing."""
    if project.normalized_name:
        return
    normalized = normalize_project(project.name)
    project.normalized_name = normalized.normalized_name
    project.project_year = normalized.project_year


class Deduplicator:
    """
    Group lifecycle engine.

    Usage:
        async with db.session() as session:
            outcome = await Deduplicator().process_project(session, project)
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self._clock = clock
        self.logger = logger.bind(component="deduplicator")

    async def find_candidates(
        self,
        session: AsyncSession,
        project: SupportProject,
    ) -> list[tuple[SupportProject, SimilarityResult]]:
        """
        Existing records similar enough to be duplicates, best first.

        Hard filters: active, not deleted, not the project itself, region
        compatible and year compatible.
        """
        ensure_normalized(project)

        stmt = select(SupportProject).where(
            SupportProject.status == "active",
            SupportProject.deleted_at.is_(None),
        )
        if project.id is not None:
            stmt = stmt.where(SupportProject.id != project.id)
        if project.region and project.region != NATIONWIDE_REGION:
            stmt = stmt.where(SupportProject.region.in_([project.region, NATIONWIDE_REGION]))
        if project.project_year is not None:
            stmt = stmt.where(or_(
                SupportProject.project_year == project.project_year,
                SupportProject.project_year.is_(None),
            ))

        result = await session.execute(stmt.order_by(SupportProject.created_at))

        matches = []
        for candidate in result.scalars():
            ensure_normalized(candidate)
            if not regions_compatible(project.region, candidate.region):
                continue
            if not years_compatible(project.project_year, candidate.project_year):
                continue

            similarity = calculate_similarity(project, candidate)
            if similarity.is_candidate:
                matches.append((candidate, similarity))

        matches.sort(key=lambda match: match[1].score, reverse=True)
        return matches

    async def group_members(self, session: AsyncSession, group_id) -> list[SupportProject]:
        result = await session.execute(
            select(SupportProject)
            .where(
                SupportProject.group_id == group_id,
                SupportProject.deleted_at.is_(None),
            )
            .order_by(SupportProject.created_at, SupportProject.id)
        )
        return list(result.scalars())

    def apply_canonical(
        self,
        group: ProjectGroup,
        members: list[SupportProject],
        canonical: SupportProject,
    ) -> bool:
        """
        Point the group at ``canonical`` and set the member flags.

        Returns:
            True if the canonical member changed
        """
        changed = group.canonical_project_id != canonical.id
        group.canonical_project_id = canonical.id
        for member in members:
            member.is_canonical = member.id == canonical.id

        if changed:
            self.logger.info(
                "canonical_changed",
                group_id=str(group.id),
                canonical_id=str(canonical.id),
            )
        return changed

    async def recanonicalize(
        self,
        session: AsyncSession,
        group: ProjectGroup,
        members: Optional[list[SupportProject]] = None,
    ) -> SupportProject:
        """Re-select the canonical member and merge supplementary data."""
        if members is None:
            members = await self.group_members(session, group.id)

        canonical = select_canonical(members, self._clock())
        self.apply_canonical(group, members, canonical)

        others = [member for member in members if member.id != canonical.id]
        provenance = merge_supplementary(canonical, others)
        if provenance:
            group.merged_data = {**(group.merged_data or {}), **provenance}

        await session.flush()
        return canonical

    async def get_or_create_group(
        self,
        session: AsyncSession,
        project: SupportProject,
        group_key: str,
    ) -> tuple[ProjectGroup, bool]:
        """
        Atomic get-or-create by ``group_key``.

        SQLite and PostgreSQL use INSERT ... ON CONFLICT DO NOTHING; other
        dialects insert inside a savepoint and re-read the winner on a
        uniqueness violation.

        Returns:
            (group, created)
        """
        values = {
            "normalized_name": project.normalized_name,
            "project_year": project.project_year,
            "merge_confidence": 1.0,
            "review_status": ReviewStatus.AUTO.value,
            "source_count": 0,
        }

        dialect = session.get_bind().dialect.name
        insert = UPSERT_DIALECTS.get(dialect)

        if insert is not None:
            stmt = (
                insert(ProjectGroup)
                .values(id=uuid.uuid4(), group_key=group_key, **values)
                .on_conflict_do_nothing(index_elements=["group_key"])
            )
            result = await session.execute(stmt)
            created = result.rowcount == 1
        else:
            try:
                async with session.begin_nested():
                    session.add(ProjectGroup(group_key=group_key, **values))
                created = True
            except IntegrityError:
                created = False

        result = await session.execute(
            select(ProjectGroup).where(ProjectGroup.group_key == group_key)
        )
        group = result.scalar_one()

        if not created:
            self.logger.info("group_creation_race_joined", group_key=group_key)
        return group, created

    async def _join_group(
        self,
        session: AsyncSession,
        group: ProjectGroup,
        joiners: list[SupportProject],
        score: float,
    ) -> SupportProject:
        for member in joiners:
            member.group_id = group.id

        group.source_count = (group.source_count or 0) + len(joiners)
        group.merge_confidence = min(group.merge_confidence, score)
        if score < AUTO_MERGE_THRESHOLD:
            group.review_status = ReviewStatus.PENDING_REVIEW.value

        await session.flush()
        return await self.recanonicalize(session, group)

    async def process_project(
        self,
        session: AsyncSession,
        project: SupportProject,
    ) -> DeduplicationOutcome:
        """
        Place a saved project into a group.

        - already grouped: refresh canonical and merged data only
        - no candidates: singleton group
        - best match grouped: join its group
        - best match ungrouped: both join the group for their key
        """
        ensure_normalized(project)
        await session.flush()

        if project.group_id is not None:
            group = await session.get(ProjectGroup, project.group_id)
            if group is not None:
                canonical = await self.recanonicalize(session, group)
                return DeduplicationOutcome(
                    action="refreshed",
                    group_id=group.id,
                    is_canonical=canonical.id == project.id,
                    merge_confidence=group.merge_confidence,
                )

        candidates = await self.find_candidates(session, project)

        if not candidates:
            group = ProjectGroup(
                normalized_name=project.normalized_name,
                project_year=project.project_year,
                group_key=make_group_key(
                    project.normalized_name,
                    project.project_year,
                    region_scope(project.region, None),
                    seed_id=project.id,
                ),
                canonical_project_id=project.id,
                merge_confidence=1.0,
                review_status=ReviewStatus.AUTO.value,
                source_count=1,
            )
            session.add(group)
            await session.flush()

            project.group_id = group.id
            project.is_canonical = True
            await session.flush()

            self.logger.debug("singleton_group_created", project_id=str(project.id))
            return DeduplicationOutcome(
                action="new",
                group_id=group.id,
                is_canonical=True,
                merge_confidence=1.0,
            )

        best, similarity = candidates[0]
        score = similarity.score

        group = None
        if best.group_id is not None:
            group = await session.get(ProjectGroup, best.group_id)

        if group is not None:
            joiners = [project]
        else:
            key = make_group_key(
                project.normalized_name,
                project.project_year,
                region_scope(project.region, best.region),
            )
            group, _ = await self.get_or_create_group(session, project, key)
            joiners = [p for p in (project, best) if p.group_id != group.id]

        canonical = await self._join_group(session, group, joiners, score)

        action = "merged" if score >= AUTO_MERGE_THRESHOLD else "review"
        self.logger.info(
            "project_grouped",
            project_id=str(project.id),
            group_id=str(group.id),
            action=action,
            score=score,
            source_count=group.source_count,
        )
        return DeduplicationOutcome(
            action=action,
            group_id=group.id,
            is_canonical=canonical.id == project.id,
            merge_confidence=group.merge_confidence,
            duplicates_found=len(candidates),
        )

    async def update_normalized_fields(
        self,
        session: AsyncSession,
        batch_size: int = 100,
    ) -> tuple[int, int]:
        """
        Backfill normalized_name/project_year for rows that lack them.

        Returns:
            (processed, remaining)
        """
        missing = (
            SupportProject.normalized_name.is_(None),
            SupportProject.deleted_at.is_(None),
        )
        result = await session.execute(
            select(SupportProject).where(*missing).limit(batch_size)
        )
        projects = list(result.scalars())
        for project in projects:
            ensure_normalized(project)
        await session.flush()

        remaining = await session.execute(
            select(func.count()).select_from(SupportProject).where(*missing)
        )
        return len(projects), remaining.scalar_one()

    async def group_existing_projects(
        self,
        session: AsyncSession,
        batch_size: int = 50,
    ) -> dict:
        """
        Run deduplication for ungrouped rows, oldest first.

        Returns:
            Counters: processed, groups_created, projects_grouped
        """
        result = await session.execute(
            select(SupportProject)
            .where(
                SupportProject.group_id.is_(None),
                SupportProject.deleted_at.is_(None),
                SupportProject.normalized_name.is_not(None),
            )
            .order_by(SupportProject.created_at)
            .limit(batch_size)
        )
        projects = list(result.scalars())

        groups_created = 0
        projects_grouped = 0
        for project in projects:
            # May have been pulled into a group earlier in this batch
            if project.group_id is not None:
                continue

            outcome = await self.process_project(session, project)
            if outcome.action == "new":
                groups_created += 1
            projects_grouped += 1

        stats = {
            "processed": len(projects),
            "groups_created": groups_created,
            "projects_grouped": projects_grouped,
        }
        self.logger.info("backfill_batch_grouped", **stats)
        return stats
