import pytest
from datetime import date, datetime

from usdt_settlement.reports import (
    account_stats, build_profit_details, build_profit_report, count_by_status, deposits_by_currency,
    maintenance_alerts
)
from usdt_settlement.utils import TimeWindow


@pytest.fixture
def report_transactions(make_transaction):
    return [
        make_transaction(id=1, created_date=datetime(2025, 3, 2)),
        make_transaction(id=2, created_date=datetime(2025, 3, 28)),
        make_transaction(id=3, created_date=datetime(2025, 1, 10)),
        make_transaction(id=4, created_date=datetime(2025, 3, 5), fund_status="等待中"),
        make_transaction(id=5, created_date="bad date"),
    ]


class TestProfitReport:

    def test_monthly_report_newest_first(self, report_transactions):
        report = build_profit_report(report_transactions, "month")

        assert [row["label"] for row in report] == ["2025年03月", "2025年01月"]
        march = report[0]
        assert march["count"] == 2
        assert march["commission"] == 200.0
        assert march["fees"] == 50.0
        assert march["exchange_profit"] == -100.0
        assert march["total_profit"] == 150.0

    def test_quarter_and_year(self, report_transactions):
        quarterly = build_profit_report(report_transactions, "quarter")
        yearly = build_profit_report(report_transactions, "year")

        assert quarterly == [{
            "key": "2025-Q1", "label": "2025年第1季度", "count": 3,
            "commission": 300.0, "fees": 75.0, "exchange_profit": -150.0, "total_profit": 225.0,
        }]
        assert yearly[0]["label"] == "2025年"

    def test_penalty_included_in_total(self, make_transaction):
        report = build_profit_report([make_transaction(violation_penalty=10)], "month")

        assert report[0]["total_profit"] == 85.0

    def test_empty_and_invalid(self, make_transaction):
        assert build_profit_report([], "month") == []
        with pytest.raises(ValueError):
            build_profit_report([make_transaction()], "week")


class TestProfitDetails:

    def test_profit_includes_penalty_rows(self, make_transaction):
        transactions = [
            make_transaction(id=1),
            make_transaction(id=2, fund_status="等待中", violation_penalty=20),
            make_transaction(id=3, fund_status="等待中"),
            make_transaction(id=4, fund_status="已退回", violation_penalty=50),
        ]
        details = build_profit_details(transactions, "profit")

        assert [row["id"] for row in details["rows"]] == [1, 2]
        assert details["total"] == 95.0
        assert details["rows"][1]["value"] == 20.0

    def test_commission_and_fee_need_positive_values(self, make_transaction):
        transactions = [
            make_transaction(id=1),
            make_transaction(id=2, commission_percentage=0, transfer_fee=0),
        ]

        assert build_profit_details(transactions, "commission")["count"] == 1
        assert build_profit_details(transactions, "fee")["total"] == 25.0
        assert build_profit_details(transactions, "exchange")["count"] == 2

    def test_frozen_sums_initial_usdt(self, make_transaction):
        transactions = [
            make_transaction(id=1, fund_status="冻结（不能处理）", exchange_rate=2),
            make_transaction(id=2, fund_status="冻结（正在处理）"),
        ]
        details = build_profit_details(transactions, "frozen")

        assert details["count"] == 1
        assert details["total"] == 500.0
        assert details["title"] == "冻结资金"

    def test_window_and_invalid_type(self, make_transaction):
        window = TimeWindow(datetime(2025, 4, 1), datetime(2025, 4, 30, 23, 59, 59))

        assert build_profit_details([make_transaction()], "penalty", window)["rows"] == []
        with pytest.raises(ValueError):
            build_profit_details([make_transaction()], "bonus")


class TestOverview:

    def test_count_by_status_zero_filled(self, make_transaction):
        counts = count_by_status([make_transaction(), make_transaction(fund_status="等待中")])

        assert len(counts) == 8
        assert counts["已完成交易"] == 1
        assert counts["等待中"] == 1
        assert counts["冻结（不能处理）"] == 0

    def test_deposits_by_currency(self, make_transaction):
        totals = deposits_by_currency([
            make_transaction(currency="EUR欧元", deposit_amount=100),
            make_transaction(currency="EUR欧元", deposit_amount=50.5),
            make_transaction(currency=None, deposit_amount=10),
        ])

        assert totals == {"EUR": 150.5, "OTHER": 10.0}

    def test_account_stats_nested(self, make_transaction):
        stats = account_stats([
            make_transaction(receiving_account_name="A公司", receiving_account_number="001", deposit_amount=100),
            make_transaction(receiving_account_name="A公司", receiving_account_number="002", deposit_amount=300),
            make_transaction(receiving_account_name="B公司", receiving_account_number="003", deposit_amount=50),
        ])

        assert [company["company"] for company in stats] == ["A公司", "B公司"]
        company_a = stats[0]
        assert company_a["count"] == 2
        assert company_a["total_deposit"] == 400.0
        assert len(company_a["currencies"][0]["accounts"]) == 2
        assert account_stats([]) == []

    def test_returned_rows_excluded_from_deposit_totals(self, make_transaction):
        transactions = [
            make_transaction(id=1, deposit_amount=1000),
            make_transaction(id=2, deposit_amount=5000, fund_status="已退回"),
        ]

        assert deposits_by_currency(transactions) == {"EUR": 1000.0}
        stats = account_stats(transactions)
        assert stats[0]["count"] == 1
        assert stats[0]["total_deposit"] == 1000.0
        assert count_by_status(transactions)["已退回"] == 1

    def test_maintenance_alerts(self, make_transaction):
        today = date(2025, 3, 10)
        alerts = maintenance_alerts([
            make_transaction(id=1, maintenance_end_date=date(2025, 3, 10)),
            make_transaction(id=2, maintenance_end_date="2025-03-12"),
            make_transaction(id=3, maintenance_end_date=date(2025, 3, 20)),
            make_transaction(id=4, maintenance_end_date=date(2025, 3, 1), fund_status="等待中"),
            make_transaction(id=5, maintenance_end_date=date(2025, 3, 1)),
            make_transaction(id=6, maintenance_end_date=None),
        ], today=today)

        assert [a["id"] for a in alerts["expiring_today"]] == [1]
        assert [a["id"] for a in alerts["expiring_soon"]] == [2]
        assert alerts["expiring_soon"][0]["days_left"] == 2
        assert [a["id"] for a in alerts["expired"]] == [4]
