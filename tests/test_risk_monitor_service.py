import pytest
from datetime import date, datetime
from unittest.mock import MagicMock

from usdt_settlement.services.risk_monitor_service import (
    DEFAULT_RECOMMENDATIONS, RiskMonitorService, calculate_risk_score, check_transaction, detect_anomalies,
    generate_business_insights, risk_level_of, severity_of
)


@pytest.fixture
def clean_transaction(make_transaction):
    def _make(**overrides):
        values = {
            "bank_name": "测试银行",
            "bank_account": "DE001",
            "settlement_usdt": 875,
            "deposit_date": date(2025, 3, 1),
        }
        values.update(overrides)
        return make_transaction(**values)
    return _make


class TestRiskRules:

    def test_clean_transaction_has_no_issues(self, clean_transaction):
        assert check_transaction(clean_transaction()) == []

    def test_amount_rules(self, clean_transaction):
        assert any("金额过小" in issue for issue in check_transaction(clean_transaction(deposit_amount=50)))
        assert any("大额交易" in issue for issue in check_transaction(clean_transaction(deposit_amount=600000)))
        assert any("可疑金额模式" in issue for issue in check_transaction(clean_transaction(deposit_amount=88880)))

    def test_rate_and_commission_rules(self, clean_transaction):
        issues = check_transaction(clean_transaction(exchange_rate=150, commission_percentage=60))

        assert any("汇率异常" in issue for issue in issues)
        assert any("佣金异常" in issue for issue in issues)

    def test_acceptance_difference(self, clean_transaction):
        issues = check_transaction(clean_transaction(acceptance_usdt=1400, settlement_usdt=875))

        assert any("承兑与结算差异过大" in issue for issue in issues)

    def test_status_dates_and_missing_fields(self, clean_transaction):
        issues = check_transaction(clean_transaction(
            fund_status="风控调解中", deposit_date=date(2025, 2, 1), bank_name="  ", currency=None
        ))

        assert any("状态需要关注" in issue for issue in issues)
        assert any("入金日期与创建日期差异过大" in issue for issue in issues)
        assert any(issue == "缺少必要信息: bank_name, currency" for issue in issues)

    def test_severity_and_score(self):
        assert severity_of(4) == "high"
        assert severity_of(2) == "medium"
        assert severity_of(1) == "low"

        anomalies = [{"severity": "high"}] * 2 + [{"severity": "medium"}] + [{"severity": "low"}] * 3
        assert calculate_risk_score(anomalies) == 65
        assert calculate_risk_score([{"severity": "high"}] * 10) == 100
        assert risk_level_of(65) == "high"
        assert risk_level_of(31) == "medium"
        assert risk_level_of(30) == "low"

    def test_detect_anomalies_reports_severity(self, clean_transaction):
        anomalies = detect_anomalies([
            clean_transaction(id=1),
            clean_transaction(id=2, deposit_amount=50, fund_status="已退回"),
        ])

        assert len(anomalies) == 1
        assert anomalies[0]["transaction_id"] == 2
        assert anomalies[0]["severity"] == "medium"


class TestBusinessInsights:

    def test_insights(self, clean_transaction):
        transactions = [clean_transaction(id=i, fund_status="等待中") for i in range(11)]
        transactions.append(clean_transaction(id=99, fund_status="冻结（正在处理）"))
        titles = [insight["title"] for insight in generate_business_insights(transactions)]

        assert titles == ["交易完成率偏低", "待处理交易积压", "风险交易预警", "币种集中度高"]

    def test_healthy_portfolio(self, clean_transaction):
        transactions = [clean_transaction(id=1, currency="EUR欧元"), clean_transaction(id=2, currency="MYR马币")]

        assert generate_business_insights(transactions) == []
        assert generate_business_insights([]) == []


class TestRiskMonitorService:

    def test_scan_empty(self, db):
        result = RiskMonitorService(db).scan()

        assert result["risk_score"] == 0
        assert result["risk_level"] == "low"
        assert result["statistics"]["completion_rate"] == 0.0
        assert result["ai_recommendations"] == DEFAULT_RECOMMENDATIONS

    def test_scan_with_ai(self, db):
        from usdt_settlement.orm_models import Transaction
        db.add(Transaction(deposit_amount=50, exchange_rate=1, fund_status="已退回",
                           created_date=datetime(2025, 3, 1), deposit_date=date(2025, 3, 1)))
        db.commit()
        ai_service = MagicMock()
        ai_service.generate_json.return_value = {"risk_control": "复核小额交易"}

        result = RiskMonitorService(db, ai_service=ai_service).scan()

        assert result["statistics"]["anomalies_count"] == 1
        assert result["anomalies"][0]["severity"] == "medium"
        assert result["risk_score"] == 10
        assert result["ai_recommendations"] == {"risk_control": "复核小额交易"}
