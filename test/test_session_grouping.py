from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from fiesta.models.chat_message import AIMode, MessageRole, TaskType
from fiesta.services.session_grouping import (
    DateSessionGrouping,
    ExplicitSessionGrouping,
    derive_title,
    filter_sessions,
    get_grouping,
    local_date,
)


CPH = ZoneInfo("Europe/Copenhagen")


def msg(content, created_at, role=MessageRole.USER, session_id="s1", task_type=None):
    return SimpleNamespace(
        content=content,
        created_at=created_at,
        role=role,
        session_id=session_id,
        task_type=task_type,
        mode=AIMode.AUTO,
    )


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestLocalDate:
    def test_aware_converted_to_local(self):
        """Тест: 23:30 UTC летом это уже следующий день в Копенгагене"""
        assert local_date(utc(2024, 6, 1, 23, 30), CPH) == date(2024, 6, 2)

    def test_naive_is_local(self):
        assert local_date(datetime(2024, 6, 1, 23, 30), CPH) == date(2024, 6, 1)


class TestDeriveTitle:
    def test_first_user_message(self):
        messages = [
            msg("Velkommen", utc(2024, 3, 1, 9), role=MessageRole.ASSISTANT),
            msg("Hvad koster en menu?", utc(2024, 3, 1, 10)),
            msg("Senere spørgsmål", utc(2024, 3, 1, 11)),
        ]
        assert derive_title(messages) == "Hvad koster en menu?"

    def test_long_title_truncated(self):
        content = "x" * 60
        title = derive_title([msg(content, utc(2024, 3, 1, 10))])

        assert title == "x" * 47 + "..."
        assert len(title) == 50

    def test_exactly_fifty_not_truncated(self):
        content = "y" * 50
        assert derive_title([msg(content, utc(2024, 3, 1, 10))]) == content

    def test_fallback_to_date(self):
        """Тест: только сообщения ассистента дают заголовок по дате"""
        messages = [msg("Velkommen", utc(2024, 3, 5, 9), role=MessageRole.ASSISTANT)]

        assert derive_title(messages, date(2024, 3, 5)) == "Chat 5.3.2024"
        assert derive_title(messages) == "Chat 5.3.2024"


class TestDateGrouping:
    def test_key_format(self):
        grouping = DateSessionGrouping(CPH)

        assert grouping.key_for_date(date(2024, 3, 5)) == "day_2024-03-05"
        assert grouping.parse_key("day_2024-03-05") == date(2024, 3, 5)
        assert grouping.parse_key("session_1700000000000") is None
        assert grouping.parse_key("day_not-a-date") is None

    def test_groups_by_local_date(self):
        grouping = DateSessionGrouping(CPH)
        messages = [
            msg("a", utc(2024, 6, 1, 10), session_id="s1"),
            msg("b", utc(2024, 6, 1, 22, 30), session_id="s2"),  # 00:30 2 июня локально
            msg("c", utc(2024, 6, 2, 8), session_id="s3"),
        ]
        groups = grouping.group(messages)

        assert list(groups.keys()) == ["day_2024-06-01", "day_2024-06-02"]
        assert [m.content for m in groups["day_2024-06-02"]] == ["b", "c"]

    def test_day_range_is_utc(self):
        start, end = DateSessionGrouping(CPH).day_range(date(2024, 6, 1))

        assert start == utc(2024, 5, 31, 22)
        assert end == utc(2024, 6, 1, 22)
        assert start.tzinfo == timezone.utc

    def test_build_sessions_sorted_by_activity(self):
        grouping = DateSessionGrouping(CPH)
        messages = [
            msg("Gammel samtale om menu", utc(2024, 6, 1, 10)),
            msg("Svar", utc(2024, 6, 1, 10, 5), role=MessageRole.ASSISTANT),
            msg("Ny samtale om event", utc(2024, 6, 3, 10), task_type=TaskType.PLANNING),
        ]
        sessions = grouping.build_sessions("u1", messages, {"day_2024-06-01": "Om menuen"})

        assert [s.id for s in sessions] == ["day_2024-06-03", "day_2024-06-01"]
        old = sessions[1]
        assert old.title == "Gammel samtale om menu"
        assert old.summary == "Om menuen"
        assert old.message_count == 2
        assert old.created_at == utc(2024, 6, 1, 10)
        assert old.last_message_at == utc(2024, 6, 1, 10, 5)
        assert "menu" in old.tags
        assert sessions[0].summary == ""
        assert sessions[0].tags == ["planlægning", "events"]

    def test_assistant_only_day_title(self):
        grouping = DateSessionGrouping(CPH)
        messages = [msg("Velkommen", utc(2024, 6, 1, 22, 30), role=MessageRole.ASSISTANT)]

        session = grouping.build_sessions("u1", messages)[0]
        assert session.title == "Chat 2.6.2024"

    @pytest.mark.asyncio
    async def test_load_day_key_uses_range(self):
        grouping = DateSessionGrouping(CPH)
        repo = AsyncMock()
        repo.list_between.return_value = ["m"]

        result = await grouping.load(repo, "u1", "day_2024-06-01")

        assert result == ["m"]
        repo.list_between.assert_awaited_once_with("u1", utc(2024, 5, 31, 22), utc(2024, 6, 1, 22))
        repo.list_for_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_other_key_uses_session_id(self):
        grouping = DateSessionGrouping(CPH)
        repo = AsyncMock()
        repo.list_for_session.return_value = []

        await grouping.load(repo, "u1", "session_1700000000000", limit=100)

        repo.list_for_session.assert_awaited_once_with("u1", "session_1700000000000", limit=100)


class TestExplicitGrouping:
    def test_groups_by_session_id(self):
        grouping = ExplicitSessionGrouping(CPH)
        messages = [
            msg("a", utc(2024, 6, 1, 10), session_id="session_1"),
            msg("b", utc(2024, 6, 1, 11), session_id="session_2"),
            msg("c", utc(2024, 6, 2, 10), session_id="session_1"),
        ]
        sessions = grouping.build_sessions("u1", messages)

        assert [s.id for s in sessions] == ["session_1", "session_2"]
        assert sessions[0].message_count == 2
        assert sessions[0].last_message_at == utc(2024, 6, 2, 10)

    def test_get_grouping(self):
        assert isinstance(get_grouping("explicit", CPH), ExplicitSessionGrouping)
        assert isinstance(get_grouping("date", CPH), DateSessionGrouping)
        with pytest.raises(ValueError):
            get_grouping("weekly", CPH)


class TestFilterSessions:
    @pytest.fixture
    def sessions(self):
        grouping = ExplicitSessionGrouping(CPH)
        base = utc(2024, 6, 1, 10)
        messages = [
            msg("Booking af event", base, session_id="a", task_type=TaskType.PLANNING),
            msg("Anden besked", base + timedelta(days=2), session_id="a"),
            msg("Faktura til kunde", base + timedelta(days=1), session_id="b"),
            msg("Colaer og menu", base + timedelta(hours=1), session_id="c"),
        ]
        return grouping.build_sessions("u1", messages, {"c": "Samtale om drikkevarer"})

    def test_default_sort_recent(self, sessions):
        assert [s.id for s in filter_sessions(sessions)] == ["a", "b", "c"]

    def test_query_matches_title_and_summary(self, sessions):
        assert [s.id for s in filter_sessions(sessions, query="FAKTURA")] == ["b"]
        assert [s.id for s in filter_sessions(sessions, query="drikkevarer")] == ["c"]

    def test_tags_any_match(self, sessions):
        result = filter_sessions(sessions, tags=["events", "finance"])
        assert [s.id for s in result] == ["a", "b"]

    def test_sort_oldest_and_title(self, sessions):
        assert [s.id for s in filter_sessions(sessions, sort_by="oldest")] == ["a", "c", "b"]
        assert [s.id for s in filter_sessions(sessions, sort_by="title")] == ["a", "c", "b"]
