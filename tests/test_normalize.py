"""Tests for feed field normalizers, flag classification and port calendar helpers."""
from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from conftest import make_vessel
from dockday.modules.normalize import (
    eta_timestamp,
    finite_number,
    last_update_timestamp,
    parse_draught,
    parse_port_timestamp,
    previous_port,
)
from dockday.schemas.vessel import VesselRecord, normalize_mmsi
from dockday.utils.flags import is_domestic_flag
from dockday.utils.port_time import (
    DAY_MS,
    PORT_TZ,
    day_window,
    local_date,
    to_epoch_ms,
    week_start,
    week_window,
)


def _ms(*args, tz=timezone.utc) -> int:
    return to_epoch_ms(datetime(*args, tzinfo=tz))


class TestParsePortTimestamp:
    def test_naive_string_is_port_time(self):
        assert parse_port_timestamp("2026-10-17 12:00:00") == _ms(2026, 10, 17, 4, 0)

    def test_iso_t_separator(self):
        assert parse_port_timestamp("2026-10-17T12:00:00") == _ms(2026, 10, 17, 4, 0)

    def test_explicit_utc_offset_kept(self):
        assert parse_port_timestamp("2026-10-17T12:00:00Z") == _ms(2026, 10, 17, 12, 0)
        assert parse_port_timestamp("2026-10-17 12:00:00+00:00") == _ms(2026, 10, 17, 12, 0)

    def test_slash_layout(self):
        assert parse_port_timestamp("2026/10/17 12:00") == _ms(2026, 10, 17, 4, 0)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", "2026-13-45 99:00"])
    def test_unparseable_is_none(self, value):
        assert parse_port_timestamp(value) is None


class TestEtaTimestamp:
    def test_numeric_seconds_preferred(self):
        record = make_vessel(eta="2030-01-01 00:00:00", eta_utc=1_790_000_000)
        assert eta_timestamp(record) == 1_790_000_000_000

    def test_falls_back_to_string(self):
        record = make_vessel(eta="2026-10-18 08:00:00")
        assert eta_timestamp(record) == _ms(2026, 10, 18, 8, 0, tz=PORT_TZ)

    def test_numeric_string_seconds_not_used(self):
        record = make_vessel(eta_utc="1790000000", eta="2026-10-18 08:00:00")
        assert eta_timestamp(record) == _ms(2026, 10, 18, 8, 0, tz=PORT_TZ)

    def test_missing_everything(self):
        assert eta_timestamp(make_vessel()) is None
        assert eta_timestamp(None) is None


class TestLastUpdateTimestamp:
    def test_numeric_seconds(self):
        record = make_vessel(last_time_utc=1_790_000_000)
        assert last_update_timestamp(record) == 1_790_000_000_000

    def test_string_with_space_separator(self):
        record = make_vessel(last_time_utc=None, last_time="2026-10-17 10:30:00")
        assert last_update_timestamp(record) == _ms(2026, 10, 17, 10, 30, tz=PORT_TZ)

    def test_malformed_string(self):
        record = make_vessel(last_time_utc=None, last_time="yesterday-ish")
        assert last_update_timestamp(record) is None


class TestParseDraught:
    @pytest.mark.parametrize("value,expected", [
        (10.5, 10.5),
        (9, 9.0),
        ("11.6", 11.6),
        (" 7.25 ", 7.25),
    ])
    def test_valid(self, value, expected):
        assert parse_draught(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf"), "inf", True])
    def test_invalid(self, value):
        assert parse_draught(value) is None


def test_finite_number_rejects_strings_and_bools():
    assert finite_number("12") is None
    assert finite_number(False) is None
    assert finite_number(3) == 3.0


class TestPreviousPort:
    def test_prefers_localized_name(self):
        assert previous_port(make_vessel(preport_cnname=" 釜山 ", last_port="Busan")) == "釜山"

    def test_falls_back_to_last_port(self):
        assert previous_port(make_vessel(preport_cnname="", last_port="Busan")) == "Busan"

    def test_unknown_is_empty(self):
        assert previous_port(make_vessel(preport_cnname=None)) == ""


class TestVesselRecord:
    def test_mmsi_normalized(self):
        assert normalize_mmsi(431000001.0) == "431000001"
        assert normalize_mmsi(" 431000001 ") == "431000001"
        assert VesselRecord(mmsi=431000001).mmsi == "431000001"

    def test_missing_mmsi_rejected(self):
        with pytest.raises(ValueError):
            VesselRecord(mmsi="")

    def test_display_name_fallbacks(self):
        assert make_vessel(ship_name=" ", ship_cnname="远洋之星").display_name == "远洋之星"
        assert make_vessel(ship_name=None, ship_cnname=None).display_name == "431000001"


class TestDomesticFlag:
    @pytest.mark.parametrize("flag", ["CN", "chn", "China", "People's Republic of China", "中国", "PRC"])
    def test_domestic(self, flag):
        assert is_domestic_flag(flag) is True

    @pytest.mark.parametrize("flag", [None, "", "Japan", "Panama", "HK"])
    def test_foreign(self, flag):
        assert is_domestic_flag(flag) is False


class TestPortCalendar:
    def test_local_date_uses_port_offset(self):
        # 2026-10-17 17:00 UTC is already the 18th at the port
        assert local_date(_ms(2026, 10, 17, 17, 0)) == date(2026, 10, 18)

    def test_day_window(self):
        window = day_window(date(2026, 10, 17))
        assert window.key == "2026-10-17"
        assert window.start_ms == _ms(2026, 10, 16, 16, 0)
        assert window.end_ms - window.start_ms == DAY_MS

    @pytest.mark.parametrize("day,monday", [
        (date(2026, 10, 12), date(2026, 10, 12)),  # Monday
        (date(2026, 10, 17), date(2026, 10, 12)),  # Saturday
        (date(2026, 10, 18), date(2026, 10, 12)),  # Sunday
        (date(2026, 10, 19), date(2026, 10, 19)),
    ])
    def test_week_start(self, day, monday):
        assert week_start(day) == monday

    def test_week_window(self):
        window = week_window(date(2026, 10, 18))
        assert window.key == "2026-10-12"
        assert window.start_ms == _ms(2026, 10, 12, 0, 0, tz=PORT_TZ)
        assert window.end_ms == _ms(2026, 10, 19, 0, 0, tz=PORT_TZ)


class TestLooseFieldTypes:
    def test_numeric_last_time_kept_as_unparseable_text(self):
        record = VesselRecord(mmsi="431000001", last_time=1760680000, draught=10.0)
        assert record.last_time == "1760680000"
        assert record.draught == 10.0
        assert last_update_timestamp(record) is None

    def test_unusable_shapes_become_none(self):
        record = VesselRecord(
            mmsi="431000001", ship_flag={"code": "JP"}, eta=["2026-10-18"], draught=[10.0], dwt=True,
        )
        assert record.ship_flag is None
        assert record.eta is None
        assert record.draught is None
        assert record.dwt is None

    def test_last_time_utc_numeric_string(self):
        record = VesselRecord(mmsi="1", last_time_utc="1760680000")
        assert last_update_timestamp(record) == 1_760_680_000_000

    def test_last_time_utc_garbage_falls_back_to_text(self):
        record = VesselRecord(mmsi="1", last_time_utc="n/a", last_time="2026-10-17 10:30:00")
        assert last_update_timestamp(record) == _ms(2026, 10, 17, 10, 30, tz=PORT_TZ)
