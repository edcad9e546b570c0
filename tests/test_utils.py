import pytest
from datetime import date, datetime

from usdt_settlement.utils import (
    currency_code, parse_date, parse_datetime, parse_quarter, period_key, previous_month,
    resolve_time_window, round_amount, time_window_label
)

NOW = datetime(2025, 5, 20, 14, 30, 0)


class TestTimeWindow:

    def test_all_has_no_window(self):
        window = resolve_time_window("all", now=NOW)

        assert window is None
        assert time_window_label(window) == "累计"

    def test_today(self):
        window = resolve_time_window("today", now=NOW)

        assert window.start == datetime(2025, 5, 20)
        assert window.contains(datetime(2025, 5, 20, 23, 59, 59))
        assert not window.contains(datetime(2025, 5, 21))
        assert window.label == "今日"

    def test_month(self):
        window = resolve_time_window("month", now=NOW)

        assert window.start == datetime(2025, 5, 1)
        assert window.end.date() == date(2025, 5, 31)
        assert window.label == "本月"

    def test_quarter_with_year(self):
        window = resolve_time_window("quarter", year=2024, quarter="Q4", now=NOW)

        assert window.start == datetime(2024, 10, 1)
        assert window.end.date() == date(2024, 12, 31)
        assert window.label == "2024年第4季度"

    def test_quarter_defaults_to_current(self):
        window = resolve_time_window("quarter", now=NOW)

        assert window.start == datetime(2025, 4, 1)
        assert window.end.date() == date(2025, 6, 30)

    def test_year(self):
        window = resolve_time_window("year", year=2023, now=NOW)

        assert window.contains("2023-07-01T00:00:00")
        assert not window.contains("2024-01-01T00:00:00")
        assert window.label == "2023年全年"

    def test_invalid_filter(self):
        with pytest.raises(ValueError):
            resolve_time_window("week", now=NOW)

    def test_invalid_quarter(self):
        with pytest.raises(ValueError):
            parse_quarter("Q5")
        assert parse_quarter("q3") == 3
        assert parse_quarter(2) == 2


class TestHelpers:

    def test_parse_datetime(self):
        assert parse_datetime("2025-01-02T03:04:05Z") == datetime(2025, 1, 2, 3, 4, 5)
        assert parse_datetime("2025-01-02T08:00:00+08:00") == datetime(2025, 1, 2, 0, 0, 0)
        assert parse_datetime(date(2025, 1, 2)) == datetime(2025, 1, 2)
        assert parse_datetime("garbage") is None
        assert parse_datetime(None) is None
        assert parse_date("2025-03-04") == date(2025, 3, 4)

    def test_currency_code(self):
        assert currency_code("EUR欧元") == "EUR"
        assert currency_code("myr") == "MYR"
        assert currency_code(None) == ""

    def test_round_amount(self):
        assert round_amount(2.675) == 2.68
        assert round_amount("10") == 10.0

    def test_period_key(self):
        moment = datetime(2025, 8, 3)

        assert period_key(moment, "month") == ("2025-08", "2025年08月")
        assert period_key(moment, "quarter") == ("2025-Q3", "2025年第3季度")
        assert period_key(moment, "year") == ("2025", "2025年")
        with pytest.raises(ValueError):
            period_key(moment, "week")

    def test_previous_month_crosses_year(self):
        assert previous_month(date(2025, 1, 15)) == (2024, 12)
        assert previous_month(date(2025, 3, 31)) == (2025, 2)
