import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
from sqlalchemy.orm import Session

from ..profit_calculator import FundStatus, calculate_breakdown, to_decimal
from ..reports import filter_by_window
from ..utils import TimeWindow, parse_datetime, time_window_label
from .ai_service import AiService
from .transaction_service import TransactionService

logger = logging.getLogger(__name__)

MAX_PROMPT_DATA_CHARS = 6000

ANALYSIS_TYPES = ("profit_trend", "currency_performance", "customer_behavior", "comprehensive")

INSIGHT_FIELDS = {
    "key_findings": "关键发现和趋势，不超过100字",
    "opportunities": "业务机会识别，不超过100字",
    "risks": "潜在风险预警，不超过100字",
    "recommendations": "优化建议，不超过100字",
}

DEFAULT_INSIGHTS = {
    "key_findings": "数据分析完成，建议关注主要业务指标趋势",
    "opportunities": "考虑扩展表现良好的币种业务",
    "risks": "注意监控异常交易模式和汇率波动",
    "recommendations": "建议优化流程效率，提升客户体验",
}


def _is_completed(transaction: Mapping[str, Any]) -> bool:
    return transaction.get("fund_status") == FundStatus.COMPLETED.value


def calculate_growth_rate(trend_data: List[Dict[str, Any]]) -> float:
    """最近7个交易日与之前7个交易日的日均盈利增长率（%）"""
    if len(trend_data) < 2:
        return 0.0
    recent = trend_data[-7:]
    earlier = trend_data[-14:-7]
    if not earlier:
        return 0.0

    recent_avg = sum(d["profit"] for d in recent) / len(recent)
    earlier_avg = sum(d["profit"] for d in earlier) / len(earlier)
    if earlier_avg == 0:
        return 0.0
    return round((recent_avg - earlier_avg) / earlier_avg * 100, 2)


def calculate_loyalty_score(transaction_count: int, total_amount: float, currency_count: int) -> float:
    frequency_score = min(transaction_count * 10, 50)
    amount_score = min(total_amount / 1000, 30)
    diversity_score = currency_count * 5
    return round(frequency_score + amount_score + diversity_score, 2)


def analyze_profit_trend(transactions: List[Mapping[str, Any]]) -> Dict[str, Any]:
    rows = []
    for transaction in transactions:
        if not _is_completed(transaction):
            continue
        created = parse_datetime(transaction.get("created_date"))
        if created is None:
            continue
        rows.append({
            "date": created.date().isoformat(),
            "profit": float(calculate_breakdown(transaction).total_profit),
        })

    if not rows:
        return {"trend_data": [], "total_profit": 0.0, "growth_rate": 0.0}

    df = pd.DataFrame(rows)
    df_daily = df.groupby("date", as_index=False).agg(
        profit=("profit", "sum"),
        volume=("profit", "size"),
    ).sort_values("date")

    trend_data = []
    for _, row in df_daily.iterrows():
        profit = float(row["profit"])
        volume = int(row["volume"])
        trend_data.append({
            "date": row["date"],
            "profit": round(profit, 2),
            "volume": volume,
            "avg_profit": round(profit / volume, 2),
        })

    return {
        "trend_data": trend_data,
        "total_profit": round(float(df["profit"].sum()), 2),
        "growth_rate": calculate_growth_rate(trend_data),
    }


def analyze_currency_performance(transactions: List[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    stats = {}
    for transaction in transactions:
        currency = transaction.get("currency") or "未知币种"
        item = stats.setdefault(currency, {
            "volume": 0, "amount": 0.0, "profit": 0.0, "completed_count": 0, "rates": []
        })
        item["volume"] += 1
        item["amount"] += float(to_decimal(transaction.get("deposit_amount")))
        item["rates"].append(float(to_decimal(transaction.get("exchange_rate"))))
        if _is_completed(transaction):
            item["completed_count"] += 1
            item["profit"] += float(calculate_breakdown(transaction).total_profit)

    result = {}
    for currency, item in stats.items():
        rates = item.pop("rates")
        completed = item["completed_count"]
        result[currency] = {
            "volume": item["volume"],
            "amount": round(item["amount"], 2),
            "completed_count": completed,
            "completion_rate": round(completed / item["volume"] * 100, 2),
            "average_rate": round(sum(rates) / len(rates), 6),
            "profit": round(item["profit"], 2),
            "profit_per_transaction": round(item["profit"] / completed, 2) if completed else 0.0,
        }
    return result


def analyze_customer_behavior(transactions: List[Mapping[str, Any]]) -> Dict[str, Any]:
    stats = {}
    for transaction in transactions:
        name = transaction.get("customer_name") or "未知客户"
        item = stats.setdefault(name, {
            "transaction_count": 0, "total_amount": 0.0, "currencies": set(), "last_transaction": None
        })
        item["transaction_count"] += 1
        item["total_amount"] += float(to_decimal(transaction.get("deposit_amount")))
        if transaction.get("currency"):
            item["currencies"].add(transaction.get("currency"))
        created = parse_datetime(transaction.get("created_date"))
        if created is not None and (item["last_transaction"] is None or created > item["last_transaction"]):
            item["last_transaction"] = created

    customers = []
    for name, item in stats.items():
        count = item["transaction_count"]
        total = item["total_amount"]
        customers.append({
            "name": name,
            "transaction_count": count,
            "total_amount": round(total, 2),
            "currencies": sorted(item["currencies"]),
            "avg_amount": round(total / count, 2),
            "last_transaction": item["last_transaction"].isoformat() if item["last_transaction"] else None,
            "loyalty_score": calculate_loyalty_score(count, total, len(item["currencies"])),
        })
    customers.sort(key=lambda x: x["total_amount"], reverse=True)

    return {
        "customers": customers,
        "top_customers": customers[:10],
        "total_customers": len(customers),
        "new_customers": sum(1 for c in customers if c["transaction_count"] == 1),
    }


class AnalyticsService:
    """智能分析服务类"""

    def __init__(self, db: Session, ai_service: Optional[AiService] = None):
        self.transactions = TransactionService(db)
        self.ai_service = ai_service
        self.logger = logging.getLogger(__name__)

    def analyze(self, analysis_type: Optional[str] = None, window: Optional[TimeWindow] = None,
                with_ai_insights: bool = True) -> Dict[str, Any]:
        analysis_type = analysis_type or "comprehensive"
        if analysis_type not in ANALYSIS_TYPES:
            raise ValueError(f"不支持的分析类型：{analysis_type}，仅支持 {'/'.join(ANALYSIS_TYPES)}")

        records = filter_by_window(self.transactions.list_transactions(), window)
        # 按创建时间升序，便于趋势计算
        records.sort(key=lambda t: parse_datetime(t.get("created_date")) or datetime.min)

        if analysis_type == "profit_trend":
            result = analyze_profit_trend(records)
        elif analysis_type == "currency_performance":
            result = analyze_currency_performance(records)
        elif analysis_type == "customer_behavior":
            result = analyze_customer_behavior(records)
        else:
            result = {
                "profit_trend": analyze_profit_trend(records),
                "currency_performance": analyze_currency_performance(records),
                "customer_behavior": analyze_customer_behavior(records),
            }

        self.logger.info(f"智能分析完成: 类型={analysis_type}, 交易数={len(records)}")
        ai_insights = self.generate_insights(result, len(records)) if with_ai_insights else None
        return {
            "analysis_type": analysis_type,
            "time_filter_label": time_window_label(window),
            "total_transactions": len(records),
            "result": result,
            "ai_insights": ai_insights,
            "timestamp": datetime.now().isoformat(),
        }

    def generate_insights(self, analysis_result: Dict[str, Any], total: int) -> Dict[str, str]:
        if self.ai_service is None:
            return dict(DEFAULT_INSIGHTS)

        # 提示词中的数据按长度截断
        summary = json.dumps(analysis_result, ensure_ascii=False, indent=2, default=str)[:MAX_PROMPT_DATA_CHARS]
        prompt = f"""作为金融数据分析专家，请分析以下数据并提供专业洞察：

分析结果：
{summary}

总交易数：{total}

请提供：关键发现和趋势、业务机会识别、潜在风险预警、优化建议。"""
        return self.ai_service.generate_json(prompt, INSIGHT_FIELDS, DEFAULT_INSIGHTS)
