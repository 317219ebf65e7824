"""Tests for the deduplication engine."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import pytest
from sqlalchemy import select

from support_crawler.core.deduplicator import (
    Deduplicator,
    merge_supplementary,
    region_scope,
    select_canonical,
)
from support_crawler.core.models import ReviewStatus
from support_crawler.db.models import ProjectGroup, SupportProject

BASE_TIME = datetime(2024, 6, 1, 9, 0)


@dataclass
class Member:
    id: str
    created_at: Optional[datetime] = None
    description: Optional[str] = None
    eligibility: Optional[str] = None
    contact_info: Optional[str] = None
    detail_url: Optional[str] = None
    attachment_urls: list = field(default_factory=list)


async def add_project(session, name, minutes=0, **kwargs) -> SupportProject:
    kwargs.setdefault("organization", "중소벤처기업부")
    project = SupportProject(
        name=name,
        source_url="https://www.bizinfo.go.kr/list",
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )
    session.add(project)
    await session.flush()
    return project


async def members_of(session, group_id) -> list[SupportProject]:
    result = await session.execute(
        select(SupportProject).where(SupportProject.group_id == group_id)
    )
    return list(result.scalars())


class TestPureHelpers:
    """Tests for canonical selection and supplementary merge."""

    def test_region_scope(self):
        """Test the non-nationwide side names the scope."""
        assert region_scope("전국", "서울") == "서울"
        assert region_scope(None, None) == "전국"

    def test_select_canonical_most_complete(self):
        """Test the most complete member wins."""
        sparse = Member("a", created_at=BASE_TIME)
        rich = Member("b", created_at=BASE_TIME, description="설명", eligibility="중소기업")

        assert select_canonical([sparse, rich], BASE_TIME) is rich

    def test_select_canonical_tie_earliest(self):
        """Test ties go to the earliest member."""
        first = Member("a", created_at=BASE_TIME)
        second = Member("b", created_at=BASE_TIME)

        assert select_canonical([first, second], BASE_TIME) is first

    def test_select_canonical_empty(self):
        """Test an empty group is an error."""
        with pytest.raises(ValueError):
            select_canonical([])

    def test_merge_supplementary(self):
        """Test blank fields are back-filled and attachment URLs unioned."""
        canonical = Member("a", description="설명", attachment_urls=["u1"])
        other = Member("b", description="다른 설명", contact_info="02-123-4567", attachment_urls=["u1", "u2"])

        provenance = merge_supplementary(canonical, [other])

        assert canonical.description == "설명"
        assert canonical.contact_info == "02-123-4567"
        assert canonical.attachment_urls == ["u1", "u2"]
        assert provenance == {"contact_info": "b", "attachment_urls": ["b"]}

    def test_merge_nothing_to_add(self):
        """Test no provenance when nothing changes."""
        canonical = Member("a", description="설명")
        assert merge_supplementary(canonical, [Member("b")]) == {}


class TestProcessProject:
    """Tests for Deduplicator.process_project on a real database."""

    @pytest.fixture
    def deduplicator(self):
        return Deduplicator()

    @pytest.mark.asyncio
    async def test_singleton(self, database, deduplicator):
        """Test a project without matches gets its own group."""
        async with database.session() as session:
            project = await add_project(session, "2024년 스마트공장 지원사업")

            outcome = await deduplicator.process_project(session, project)

            group = await session.get(ProjectGroup, outcome.group_id)
            assert outcome.action == "new"
            assert outcome.is_canonical
            assert group.source_count == 1
            assert group.merge_confidence == 1.0
            assert group.review_status == ReviewStatus.AUTO.value
            assert group.canonical_project_id == project.id
            assert group.group_key.endswith(str(project.id))
            assert project.normalized_name == "스마트공장"
            assert project.project_year == 2024

    @pytest.mark.asyncio
    async def test_auto_merge_joins_group(self, database, deduplicator):
        """Test a 0.85 match joins the existing group."""
        async with database.session() as session:
            first = await add_project(session, "2024년 스마트공장 지원사업")
            await deduplicator.process_project(session, first)

            second = await add_project(
                session,
                "2024년 제2차 스마트공장 지원사업 (수정공고)",
                minutes=5,
                organization="경남테크노파크",
                region="경남",
            )
            outcome = await deduplicator.process_project(session, second)

            group = await session.get(ProjectGroup, outcome.group_id)
            members = await members_of(session, group.id)

            assert outcome.action == "merged"
            assert outcome.duplicates_found == 1
            assert group.id == first.group_id
            assert group.source_count == 2
            assert group.merge_confidence == 0.85
            assert group.review_status == ReviewStatus.AUTO.value
            assert sum(1 for m in members if m.is_canonical) == 1
            assert group.canonical_project_id == first.id

    @pytest.mark.asyncio
    async def test_review_pair(self, database, deduplicator):
        """Test a 0.70 match joins but marks the group for review."""
        async with database.session() as session:
            first = await add_project(
                session, "2024년 스마트공장 지원사업",
                deadline=datetime(2024, 1, 1), amount_max=100_000_000,
            )
            await deduplicator.process_project(session, first)

            second = await add_project(
                session, "2024년 스마트공장 지원사업", minutes=5,
                organization="스마트제조혁신추진단",
                deadline=datetime(2024, 6, 1), amount_max=10_000_000,
            )
            outcome = await deduplicator.process_project(session, second)
            group = await session.get(ProjectGroup, outcome.group_id)

            assert outcome.action == "review"
            assert group.merge_confidence == 0.70
            assert group.review_status == ReviewStatus.PENDING_REVIEW.value

            # A later clean match keeps the lower confidence and the review flag
            third = await add_project(session, "2024년 스마트공장 지원사업 안내", minutes=10, organization="경기도")
            outcome = await deduplicator.process_project(session, third)
            await session.refresh(group)

            assert outcome.action == "merged"
            assert group.source_count == 3
            assert group.merge_confidence == 0.70
            assert group.review_status == ReviewStatus.PENDING_REVIEW.value

    @pytest.mark.asyncio
    async def test_different_names_stay_separate(self, database, deduplicator):
        """Test unrelated titles get separate groups."""
        async with database.session() as session:
            a = await add_project(session, "2024년 스마트공장 지원사업")
            b = await add_project(session, "2024년 수출바우처 모집", minutes=1)

            await deduplicator.process_project(session, a)
            outcome = await deduplicator.process_project(session, b)

            assert outcome.action == "new"
            assert a.group_id != b.group_id

    @pytest.mark.asyncio
    async def test_region_filter(self, database, deduplicator):
        """Test different regional programs are never merged."""
        async with database.session() as session:
            a = await add_project(session, "2024년 스마트공장 지원사업", region="서울")
            b = await add_project(session, "2024년 스마트공장 지원사업", minutes=1, organization="부산시", region="부산")

            await deduplicator.process_project(session, a)
            outcome = await deduplicator.process_project(session, b)

            assert outcome.action == "new"

    @pytest.mark.asyncio
    async def test_year_filter(self, database, deduplicator):
        """Test different program years are never merged."""
        async with database.session() as session:
            a = await add_project(session, "2024년 스마트공장 지원사업")
            b = await add_project(session, "2025년 스마트공장 지원사업", minutes=1)

            await deduplicator.process_project(session, a)
            outcome = await deduplicator.process_project(session, b)

            assert a.normalized_name == b.normalized_name
            assert outcome.action == "new"

    @pytest.mark.asyncio
    async def test_ungrouped_match_creates_keyed_group(self, database, deduplicator):
        """Test both projects join a group keyed on name, year and region."""
        async with database.session() as session:
            a = await add_project(session, "2024년 스마트공장 지원사업")
            b = await add_project(session, "2024년 스마트공장 지원사업", minutes=1, organization="경기도")

            outcome = await deduplicator.process_project(session, b)
            group = await session.get(ProjectGroup, outcome.group_id)

            assert group.group_key == "스마트공장|2024|전국"
            assert group.source_count == 2
            assert a.group_id == b.group_id == group.id
            assert a.is_canonical and not b.is_canonical

    @pytest.mark.asyncio
    async def test_more_complete_member_becomes_canonical(self, database, deduplicator):
        """Test the canonical flag moves to the richer record and data is merged."""
        async with database.session() as session:
            first = await add_project(
                session, "2024년 스마트공장 지원사업",
                contact_info="02-123-4567",
                attachment_urls=["https://a.go.kr/1.hwp"],
            )
            await deduplicator.process_project(session, first)

            second = await add_project(
                session, "2024년 스마트공장 지원사업", minutes=5,
                organization="경기도",
                description="공장 자동화 지원",
                eligibility="제조 중소기업",
                attachment_urls=["https://b.go.kr/2.pdf"],
            )
            outcome = await deduplicator.process_project(session, second)
            group = await session.get(ProjectGroup, outcome.group_id)

            assert outcome.is_canonical
            assert second.is_canonical and not first.is_canonical
            assert group.canonical_project_id == second.id
            assert second.contact_info == "02-123-4567"
            assert second.attachment_urls == ["https://b.go.kr/2.pdf", "https://a.go.kr/1.hwp"]
            assert group.merged_data["contact_info"] == str(first.id)

    @pytest.mark.asyncio
    async def test_refresh_does_not_count_twice(self, database, deduplicator):
        """Test re-processing a grouped project only refreshes the group."""
        async with database.session() as session:
            a = await add_project(session, "2024년 스마트공장 지원사업")
            b = await add_project(session, "2024년 스마트공장 지원사업", minutes=1, organization="경기도")
            await deduplicator.process_project(session, a)
            await deduplicator.process_project(session, b)

            outcome = await deduplicator.process_project(session, b)
            group = await session.get(ProjectGroup, outcome.group_id)

            assert outcome.action == "refreshed"
            assert group.source_count == 2

    @pytest.mark.asyncio
    async def test_get_or_create_group_is_idempotent(self, database, deduplicator):
        """Test a second create for the same key returns the existing group."""
        async with database.session() as session:
            project = await add_project(session, "2024년 스마트공장 지원사업")
            await deduplicator.find_candidates(session, project)

            group, created = await deduplicator.get_or_create_group(session, project, "key-1")
            again, created_again = await deduplicator.get_or_create_group(session, project, "key-1")

            assert created
            assert not created_again
            assert again.id == group.id


class TestBackfill:
    """Tests for the batch backfill helpers."""

    @pytest.mark.asyncio
    async def test_normalize_then_group(self, database):
        """Test rows are normalized and then grouped oldest first."""
        deduplicator = Deduplicator()
        async with database.session() as session:
            for minutes, (name, org) in enumerate([
                ("2024년 스마트공장 지원사업", "중소벤처기업부"),
                ("2024년 스마트공장 지원사업", "경기도"),
                ("2024년 수출바우처 모집", "산업통상자원부"),
            ]):
                await add_project(session, name, minutes=minutes, organization=org)

        async with database.session() as session:
            processed, remaining = await deduplicator.update_normalized_fields(session)
        assert (processed, remaining) == (3, 0)

        async with database.session() as session:
            counts = await deduplicator.group_existing_projects(session)

        assert counts == {"processed": 3, "groups_created": 1, "projects_grouped": 2}

        async with database.session() as session:
            groups = list((await session.execute(select(ProjectGroup))).scalars())
            ungrouped = (await session.execute(
                select(SupportProject).where(SupportProject.group_id.is_(None))
            )).scalars().all()

        assert len(groups) == 2
        assert ungrouped == []
