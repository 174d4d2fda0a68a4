"""Unit tests for homectrl/utils: timestamp round-trips, ULIDs, secret masking."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ulid import ULID

from homectrl.utils.clock import from_db, to_db, utc_now
from homectrl.utils.logger import clear_request_id, mask_secret, request_id_var, set_request_id
from homectrl.utils.ulid import generate_ulid


class TestClock:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is not None

    def test_round_trip(self) -> None:
        moment = datetime(2026, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc)
        assert from_db(to_db(moment)) == moment

    def test_naive_treated_as_utc(self) -> None:
        assert to_db(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000000+00:00"

    def test_other_offsets_normalised(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        assert to_db(datetime(2026, 1, 1, 2, 0, tzinfo=plus_two)).startswith("2026-01-01T00:00:00")

    def test_string_order_is_time_order(self) -> None:
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        stamps = [to_db(base + timedelta(microseconds=n)) for n in (0, 1, 999_999, 1_000_000)]
        assert stamps == sorted(stamps)

    def test_none_passthrough(self) -> None:
        assert from_db(None) is None


class TestUlid:
    def test_format(self) -> None:
        value = generate_ulid()
        assert len(value) == 26
        assert str(ULID.from_str(value)) == value

    def test_unique(self) -> None:
        assert len({generate_ulid() for _ in range(100)}) == 100


class TestLogging:
    def test_mask_secret(self) -> None:
        assert mask_secret("abcdef123456") == "abcd..."
        assert mask_secret("") == ""

    def test_request_id_context(self) -> None:
        set_request_id("01TEST")
        assert request_id_var.get() == "01TEST"
        clear_request_id()
        assert request_id_var.get() is None
