"""Tests for the trailing recurrence phrase parser."""

import pytest

from tasklane.models.recurrence import RecurrenceKind
from tasklane.recurrence.parser import parse_recurrence


class TestParseRecurrence:

    @pytest.mark.parametrize(
        "text,kind,remainder",
        [
            ("water plants every day", RecurrenceKind.DAILY, "water plants"),
            ("team sync every week", RecurrenceKind.WEEKLY, "team sync"),
            ("payroll every other week", RecurrenceKind.BIWEEKLY, "payroll"),
            ("pay rent every month", RecurrenceKind.MONTHLY, "pay rent"),
            ("renew passport every year", RecurrenceKind.YEARLY, "renew passport"),
        ],
    )
    def test_each_phrase(self, text, kind, remainder):
        parsed = parse_recurrence(text)
        assert parsed is not None
        assert parsed.kind == kind
        assert parsed.text == remainder

    def test_every_other_week_is_not_downgraded_to_weekly(self):
        parsed = parse_recurrence("standup every other week")
        assert parsed.kind == RecurrenceKind.BIWEEKLY
        assert parsed.text == "standup"

    def test_case_and_whitespace_insensitive(self):
        parsed = parse_recurrence("  Stretch   EVERY   Day  ")
        assert parsed.kind == RecurrenceKind.DAILY
        assert parsed.text == "Stretch"

    def test_phrase_must_be_trailing(self):
        assert parse_recurrence("every day I stretch") is None
        assert parse_recurrence("do it every day or not") is None

    def test_phrase_alone_is_a_regular_task(self):
        assert parse_recurrence("every day") is None

    def test_no_phrase(self):
        assert parse_recurrence("buy milk") is None
        assert parse_recurrence("") is None
        assert parse_recurrence(None) is None

    def test_unsupported_phrases(self):
        assert parse_recurrence("gym every monday") is None
        assert parse_recurrence("gym every 2 days") is None
