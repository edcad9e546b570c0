import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ..profit_calculator import FundStatus, to_decimal
from ..utils import parse_datetime
from .ai_service import AiService
from .transaction_service import TransactionService

logger = logging.getLogger(__name__)

# 风控规则
EXCHANGE_RATE_RANGE = (0.001, 100)
SMALL_AMOUNT_THRESHOLD = 100
LARGE_AMOUNT_THRESHOLD = 500000
SUSPICIOUS_AMOUNT_PATTERNS = (77777, 88888, 99999)
SUSPICIOUS_AMOUNT_TOLERANCE = 10
COMMISSION_RANGE = (0, 50)
ACCEPTANCE_DIFF_THRESHOLD = 50
DATE_GAP_DAYS = 7
REQUIRED_FIELDS = ("customer_name", "bank_name", "bank_account", "currency")

ATTENTION_STATUSES = (
    FundStatus.RETURNED.value,
    FundStatus.RISK_MEDIATION.value,
    FundStatus.FROZEN_PROCESSING.value,
    FundStatus.FROZEN_UNPROCESSABLE.value,
)

RECOMMENDATION_FIELDS = {
    "risk_control": "风险控制建议，不超过50字",
    "process_optimization": "业务流程优化建议，不超过50字",
    "data_quality": "数据质量改进建议，不超过50字",
    "monitoring_focus": "监控重点建议，不超过50字",
}

DEFAULT_RECOMMENDATIONS = {
    "risk_control": "加强大额交易审查，建立汇率波动预警机制",
    "process_optimization": "优化待处理交易流程，减少处理时间",
    "data_quality": "完善数据录入规范，减少信息缺失",
    "monitoring_focus": "重点监控异常汇率和可疑金额模式",
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def check_transaction(transaction: Mapping[str, Any]) -> List[str]:
    """返回单笔交易命中的风控问题描述"""
    issues = []

    rate = to_decimal(transaction.get("exchange_rate"))
    if rate < EXCHANGE_RATE_RANGE[0] or rate > EXCHANGE_RATE_RANGE[1]:
        issues.append(f"汇率异常: {float(rate)} (正常范围: {EXCHANGE_RATE_RANGE[0]}-{EXCHANGE_RATE_RANGE[1]})")

    amount = to_decimal(transaction.get("deposit_amount"))
    if amount < SMALL_AMOUNT_THRESHOLD:
        issues.append(f"金额过小: {float(amount)} (可能是测试数据)")
    if amount > LARGE_AMOUNT_THRESHOLD:
        issues.append(f"大额交易: {float(amount)} (需要额外审查)")
    if any(abs(amount - pattern) < SUSPICIOUS_AMOUNT_TOLERANCE for pattern in SUSPICIOUS_AMOUNT_PATTERNS):
        issues.append(f"可疑金额模式: {float(amount)}")

    commission = to_decimal(transaction.get("commission_percentage"))
    if commission < COMMISSION_RANGE[0] or commission > COMMISSION_RANGE[1]:
        issues.append(f"佣金异常: {float(commission)}% (正常范围: {COMMISSION_RANGE[0]}-{COMMISSION_RANGE[1]}%)")

    acceptance = to_decimal(transaction.get("acceptance_usdt"))
    settlement = to_decimal(transaction.get("settlement_usdt"))
    if acceptance > 0 and settlement > 0:
        difference = acceptance - settlement
        percentage_diff = abs(difference / settlement) * 100
        if percentage_diff > ACCEPTANCE_DIFF_THRESHOLD:
            issues.append(f"承兑与结算差异过大: {percentage_diff:.1f}% ({difference:.2f} USDT)")

    status = transaction.get("fund_status")
    if status in ATTENTION_STATUSES:
        issues.append(f"状态需要关注: {status}")

    created = parse_datetime(transaction.get("created_date"))
    deposited = parse_datetime(transaction.get("deposit_date"))
    if created is not None and deposited is not None:
        days_difference = abs((created - deposited).total_seconds()) / 86400
        if days_difference > DATE_GAP_DAYS:
            issues.append(f"入金日期与创建日期差异过大: {days_difference:.1f} 天")

    missing_fields = [field for field in REQUIRED_FIELDS if _is_blank(transaction.get(field))]
    if missing_fields:
        issues.append(f"缺少必要信息: {', '.join(missing_fields)}")

    return issues


def severity_of(issue_count: int) -> str:
    if issue_count > 3:
        return "high"
    if issue_count > 1:
        return "medium"
    return "low"


def detect_anomalies(transactions: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    anomalies = []
    for transaction in transactions:
        issues = check_transaction(transaction)
        if not issues:
            continue
        anomalies.append({
            "transaction_id": transaction.get("id"),
            "transaction_number": transaction.get("transaction_number"),
            "customer_name": transaction.get("customer_name"),
            "amount": float(to_decimal(transaction.get("deposit_amount"))),
            "currency": transaction.get("currency"),
            "status": transaction.get("fund_status"),
            "issues": issues,
            "severity": severity_of(len(issues)),
            "created_date": transaction.get("created_date"),
        })
    return anomalies


def generate_business_insights(transactions: List[Mapping[str, Any]]) -> List[Dict[str, str]]:
    if not transactions:
        return []

    insights = []
    total = len(transactions)
    statuses = Counter(t.get("fund_status") for t in transactions)

    completion_rate = statuses[FundStatus.COMPLETED.value] / total * 100
    if completion_rate < 70:
        insights.append({
            "type": "warning",
            "title": "交易完成率偏低",
            "message": f"当前完成率为 {completion_rate:.1f}%，建议检查流程效率",
            "priority": "medium",
        })

    pending = statuses[FundStatus.PENDING.value]
    if pending > 10:
        insights.append({
            "type": "alert",
            "title": "待处理交易积压",
            "message": f"有 {pending} 笔交易仍在等待处理",
            "priority": "high",
        })

    attention = sum(statuses[status] for status in ATTENTION_STATUSES)
    if attention > 0:
        insights.append({
            "type": "danger",
            "title": "风险交易预警",
            "message": f"发现 {attention} 笔需要关注的交易",
            "priority": "high",
        })

    currencies = Counter(t.get("currency") or "未知币种" for t in transactions)
    dominant_currency, dominant_count = currencies.most_common(1)[0]
    if dominant_count / total > 0.8:
        insights.append({
            "type": "info",
            "title": "币种集中度高",
            "message": f"{dominant_currency} 占比超过80%，建议关注汇率风险",
            "priority": "low",
        })

    return insights


def calculate_risk_score(anomalies: List[Dict[str, Any]]) -> int:
    severities = Counter(a["severity"] for a in anomalies)
    return min(100, severities["high"] * 20 + severities["medium"] * 10 + severities["low"] * 5)


def risk_level_of(score: int) -> str:
    if score > 60:
        return "high"
    if score > 30:
        return "medium"
    return "low"


class RiskMonitorService:
    """交易风控监控服务类"""

    def __init__(self, db: Session, ai_service: Optional[AiService] = None):
        self.transactions = TransactionService(db)
        self.ai_service = ai_service
        self.logger = logging.getLogger(__name__)

    def scan(self, with_ai_recommendations: bool = True) -> Dict[str, Any]:
        records = self.transactions.list_transactions()
        anomalies = detect_anomalies(records)
        insights = generate_business_insights(records)
        risk_score = calculate_risk_score(anomalies)

        total = len(records)
        completed = sum(1 for t in records if t.get("fund_status") == FundStatus.COMPLETED.value)
        high_risk_count = sum(1 for a in anomalies if a["severity"] == "high")
        self.logger.info(f"风控扫描完成: 交易数={total}, 异常数={len(anomalies)}, 风险评分={risk_score}")

        ai_recommendations = None
        if with_ai_recommendations:
            ai_recommendations = self.generate_recommendations(anomalies, insights, total)

        return {
            "timestamp": datetime.now().isoformat(),
            "risk_score": risk_score,
            "risk_level": risk_level_of(risk_score),
            "anomalies": anomalies,
            "insights": insights,
            "ai_recommendations": ai_recommendations,
            "statistics": {
                "total_transactions": total,
                "anomalies_count": len(anomalies),
                "high_risk_count": high_risk_count,
                "completion_rate": round(completed / total * 100, 1) if total else 0.0,
            },
        }

    def generate_recommendations(self, anomalies: List[Dict[str, Any]], insights: List[Dict[str, str]],
                                 total: int) -> Dict[str, str]:
        if self.ai_service is None:
            return dict(DEFAULT_RECOMMENDATIONS)

        prompt = f"""作为一个金融风控专家，请分析以下数据并给出专业建议：

异常交易数据：
{json.dumps(anomalies[:5], ensure_ascii=False, indent=2, default=str)}

业务洞察：
{json.dumps(insights, ensure_ascii=False, indent=2)}

交易总量：{total}
请从风险控制、业务流程优化、数据质量改进、监控重点四个方面给出建议。"""
        return self.ai_service.generate_json(prompt, RECOMMENDATION_FIELDS, DEFAULT_RECOMMENDATIONS)
