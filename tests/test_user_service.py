"""Tests for user registration and timezone handling."""

import pytest
from datetime import date, datetime, timezone

from tasklane.errors import ConflictError, InvalidError, NotFoundError


class TestRegister:

    def test_register_normalizes_email(self, user_service):
        user = user_service.register("  New.User@Example.COM ", "Europe/Berlin")
        assert user.id is not None
        assert user.email == "new.user@example.com"
        assert user.timezone == "Europe/Berlin"
        assert user.last_rollover_at is None

    def test_default_timezone_is_utc(self, user_service):
        assert user_service.register("utc@example.com").timezone == "UTC"

    def test_duplicate_email_conflicts(self, user_service):
        user_service.register("dup@example.com")
        with pytest.raises(ConflictError) as exc:
            user_service.register("DUP@example.com")
        assert exc.value.field == "email"

    @pytest.mark.parametrize("email", ["", "   ", "not-an-email"])
    def test_invalid_email(self, user_service, email):
        with pytest.raises(InvalidError):
            user_service.register(email)

    def test_unknown_timezone(self, user_service):
        with pytest.raises(InvalidError) as exc:
            user_service.register("tz@example.com", "Mars/Olympus_Mons")
        assert exc.value.field == "timezone"


class TestTimezone:

    def test_update_timezone_changes_current_date(self, user_service, clock, test_user_id):
        # 2024-03-10 09:00 in Los Angeles is 2024-03-11 01:00 in Tokyo.
        assert user_service.current_date(test_user_id) == date(2024, 3, 10)

        user = user_service.update_timezone(test_user_id, "Asia/Tokyo")
        assert user.timezone == "Asia/Tokyo"
        assert user_service.current_date(test_user_id) == date(2024, 3, 11)

    def test_update_to_unknown_timezone_is_rejected(self, user_service, test_user_id):
        with pytest.raises(InvalidError):
            user_service.update_timezone(test_user_id, "Nowhere/Special")
        assert user_service.get(test_user_id).timezone == "America/Los_Angeles"

    def test_unknown_user(self, user_service):
        with pytest.raises(NotFoundError):
            user_service.get(4242)
        with pytest.raises(NotFoundError):
            user_service.update_timezone(4242, "UTC")

    def test_current_date_follows_the_clock(self, user_service, clock, test_user_id):
        clock.set(datetime(2024, 3, 11, 6, 59, tzinfo=timezone.utc))
        assert user_service.current_date(test_user_id) == date(2024, 3, 10)
        clock.advance(minutes=2)
        # 07:01 UTC is 00:01 PDT on the 11th.
        assert user_service.current_date(test_user_id) == date(2024, 3, 11)
