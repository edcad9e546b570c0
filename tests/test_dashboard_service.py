import pytest
from datetime import date, datetime

from usdt_settlement.orm_models import Transaction
from usdt_settlement.services.dashboard_service import DashboardService


@pytest.fixture
def seeded_db(db):
    rows = [
        dict(transaction_number="20250105/0001", fund_status="已完成交易", created_date=datetime(2025, 1, 5),
             acceptance_usdt=950),
        dict(transaction_number="20250410/0001", fund_status="已完成交易", created_date=datetime(2025, 4, 10),
             acceptance_usdt=950, violation_penalty=10),
        dict(transaction_number="20250411/0001", fund_status="等待中", created_date=datetime(2025, 4, 11),
             acceptance_usdt=950),
        dict(transaction_number="20250412/0001", fund_status="冻结（不能处理）", created_date=datetime(2025, 4, 12),
             exchange_rate=2, commission_percentage=0, transfer_fee=0),
        dict(transaction_number="20250413/0001", fund_status="已退回", created_date=datetime(2025, 4, 13),
             violation_penalty=40),
    ]
    for values in rows:
        data = {
            "customer_name": "张三", "currency": "EUR欧元", "deposit_amount": 1000, "exchange_rate": 1,
            "commission_percentage": 10, "transfer_fee": 25, "receiving_account_name": "A公司",
            "receiving_account_number": "001", "maintenance_end_date": date(2025, 4, 20),
        }
        data.update(values)
        db.add(Transaction(**data))
    db.commit()
    return db


class TestDashboardService:

    def test_profit_metrics_all(self, seeded_db):
        result = DashboardService(seeded_db).profit_metrics("all")

        assert result["time_filter_label"] == "累计"
        assert result["profit"] == 160.0
        assert result["completed_count"] == 2
        assert result["estimated_count"] == 4
        assert result["frozen_funds"] == 500.0

    def test_profit_metrics_quarter(self, seeded_db):
        result = DashboardService(seeded_db).profit_metrics("quarter", year=2025, quarter="Q2")

        assert result["time_filter_label"] == "2025年第2季度"
        assert result["profit"] == 85.0
        assert result["completed_count"] == 1

    def test_overview(self, seeded_db):
        result = DashboardService(seeded_db).overview("year", year=2025, today=date(2025, 4, 18))

        assert result["total_count"] == 5
        assert result["status_counts"]["已完成交易"] == 2
        assert result["deposits_by_currency"] == {"EUR": 4000.0}
        assert result["account_stats"][0]["count"] == 4
        assert len(result["maintenance_alerts"]["expiring_soon"]) == 5

    def test_report_and_details(self, seeded_db):
        service = DashboardService(seeded_db)

        report = service.profit_report("quarter")
        assert [row["label"] for row in report] == ["2025年第2季度", "2025年第1季度"]

        details = service.profit_details("penalty")
        assert details["count"] == 1
        assert details["total"] == 10.0

        with pytest.raises(ValueError):
            service.profit_details("penalty", time_filter="decade")
