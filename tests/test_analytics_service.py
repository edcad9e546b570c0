import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from usdt_settlement.orm_models import Transaction
from usdt_settlement.services.analytics_service import (
    DEFAULT_INSIGHTS, AnalyticsService, analyze_currency_performance, analyze_customer_behavior,
    analyze_profit_trend, calculate_growth_rate, calculate_loyalty_score
)


class TestAnalyticsFunctions:

    def test_profit_trend_groups_completed_by_day(self, make_transaction):
        transactions = [
            make_transaction(id=1, created_date=datetime(2025, 3, 1, 9)),
            make_transaction(id=2, created_date=datetime(2025, 3, 1, 18), violation_penalty=5),
            make_transaction(id=3, created_date=datetime(2025, 3, 2, 9)),
            make_transaction(id=4, created_date=datetime(2025, 3, 2, 9), fund_status="等待中"),
        ]
        result = analyze_profit_trend(transactions)

        assert result["trend_data"] == [
            {"date": "2025-03-01", "profit": 155.0, "volume": 2, "avg_profit": 77.5},
            {"date": "2025-03-02", "profit": 75.0, "volume": 1, "avg_profit": 75.0},
        ]
        assert result["total_profit"] == 230.0
        assert result["growth_rate"] == 0.0

    def test_growth_rate_compares_last_two_weeks(self):
        trend = [{"profit": 10.0}] * 7 + [{"profit": 15.0}] * 7

        assert calculate_growth_rate(trend) == 50.0
        assert calculate_growth_rate([{"profit": 10.0}]) == 0.0
        assert calculate_growth_rate([{"profit": 0.0}] * 7 + [{"profit": 5.0}] * 7) == 0.0

    def test_loyalty_score_is_capped(self):
        assert calculate_loyalty_score(1, 500, 1) == 15.5
        assert calculate_loyalty_score(20, 100000, 2) == 90

    def test_currency_performance(self, make_transaction):
        transactions = [
            make_transaction(id=1, currency="EUR欧元", exchange_rate=1.0),
            make_transaction(id=2, currency="EUR欧元", exchange_rate=2.0, fund_status="等待中"),
            make_transaction(id=3, currency="MYR马币", exchange_rate=4.0, fund_status="等待中"),
        ]
        result = analyze_currency_performance(transactions)

        eur = result["EUR欧元"]
        assert eur["volume"] == 2
        assert eur["completed_count"] == 1
        assert eur["completion_rate"] == 50.0
        assert eur["average_rate"] == 1.5
        assert eur["profit"] == 75.0
        assert eur["profit_per_transaction"] == 75.0
        assert result["MYR马币"]["profit_per_transaction"] == 0.0

    def test_customer_behavior_top_ten_sorted(self, make_transaction):
        transactions = [
            make_transaction(id=i, customer_name=f"客户{i}", deposit_amount=1000 * i)
            for i in range(1, 13)
        ]
        transactions.append(make_transaction(id=13, customer_name="客户1", currency="USD美元"))
        result = analyze_customer_behavior(transactions)

        assert result["total_customers"] == 12
        assert len(result["top_customers"]) == 10
        assert result["top_customers"][0]["name"] == "客户12"
        assert result["new_customers"] == 11
        customer_1 = next(c for c in result["customers"] if c["name"] == "客户1")
        assert customer_1["currencies"] == ["EUR欧元", "USD美元"]
        assert customer_1["loyalty_score"] == 32.0


class TestAnalyticsService:

    @pytest.fixture
    def seeded_db(self, db):
        now = datetime.now()
        for offset in range(3):
            db.add(Transaction(customer_name="张三", currency="EUR欧元", deposit_amount=1000, exchange_rate=1,
                               commission_percentage=10, transfer_fee=25, fund_status="已完成交易",
                               acceptance_usdt=950, created_date=now - timedelta(days=offset)))
        db.commit()
        return db

    def test_comprehensive_uses_ai(self, seeded_db):
        ai_service = MagicMock()
        ai_service.generate_json.return_value = {"key_findings": "盈利稳定"}
        service = AnalyticsService(seeded_db, ai_service=ai_service)

        result = service.analyze()

        assert result["analysis_type"] == "comprehensive"
        assert result["total_transactions"] == 3
        assert result["result"]["profit_trend"]["total_profit"] == 225.0
        assert result["ai_insights"] == {"key_findings": "盈利稳定"}
        prompt, fields, fallback = ai_service.generate_json.call_args[0]
        assert "总交易数：3" in prompt
        assert fallback == DEFAULT_INSIGHTS

    def test_default_insights_without_ai(self, seeded_db):
        result = AnalyticsService(seeded_db).analyze("currency_performance")

        assert result["ai_insights"] == DEFAULT_INSIGHTS
        assert result["result"]["EUR欧元"]["volume"] == 3

    def test_invalid_type(self, db):
        with pytest.raises(ValueError):
            AnalyticsService(db).analyze("risk_assessment")
