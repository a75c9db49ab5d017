"""Integration tests for application number allocation."""

import pytest

from drd.kernel.models.base import utcnow
from drd.kernel.models.counter import Counter

from tests.factories import file_patent, file_research_paper


class TestApplicationNumbers:

    @pytest.mark.asyncio
    async def test_numbered_per_prefix(self, db_session, filer, school_id):
        year = utcnow().year
        first = await file_patent(db_session, filer, school_id)
        paper = await file_research_paper(db_session, filer, school_id)
        second = await file_patent(db_session, filer, school_id)

        assert first.application_number == f"PAT-{year}-0001"
        assert second.application_number == f"PAT-{year}-0002"
        assert paper.application_number == f"RP-{year}-0001"

    @pytest.mark.asyncio
    async def test_counter_shared_across_sessions(self, session_maker, filer, school_id):
        year = utcnow().year
        async with session_maker() as one:
            first = await file_patent(one, filer, school_id)
        async with session_maker() as two:
            second = await file_patent(two, filer, school_id)

        assert (first.application_number, second.application_number) == (
            f"PAT-{year}-0001",
            f"PAT-{year}-0002",
        )

    @pytest.mark.asyncio
    async def test_numbers_continue_past_four_digits(self, db_session, filer, school_id):
        year = utcnow().year
        db_session.add(Counter(key=f"PAT-{year}", last_value=9999))
        await db_session.commit()

        a = await file_patent(db_session, filer, school_id)
        b = await file_patent(db_session, filer, school_id)

        assert a.application_number == f"PAT-{year}-10000"
        assert b.application_number == f"PAT-{year}-10001"
