# usdt_settlement/reports.py
import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .profit_calculator import ALL_FUND_STATUSES, FundStatus, calculate_breakdown, to_decimal
from .utils import REPORT_PERIODS, TimeWindow, currency_code, parse_date, parse_datetime, period_key, round_amount

logger = logging.getLogger(__name__)

# 明细下钻类型 -> (名称, 取值字段)
DETAIL_TYPES = {
    "profit": ("总盈利", "total_profit"),
    "commission": ("佣金收入", "commission_usdt"),
    "fee": ("手续费收入", "fee_usdt"),
    "exchange": ("汇率差盈亏", "exchange_profit"),
    "penalty": ("违规赔偿", "penalty_usdt"),
    "frozen": ("冻结资金", "initial_usdt"),
}

_REPORT_COLUMNS = ["key", "label", "count", "commission", "fees", "exchange_profit", "total_profit"]


def filter_by_window(transactions: Iterable[Mapping[str, Any]],
                     window: Optional[TimeWindow]) -> List[Mapping[str, Any]]:
    if window is None:
        return list(transactions)
    return [t for t in transactions if window.contains(t.get("created_date"))]


def build_profit_report(transactions: Iterable[Mapping[str, Any]], period: str = "month") -> List[Dict[str, Any]]:
    """
    已完成交易按月/季度/年汇总盈利，最新的时间段排在最前。

    :param period: month / quarter / year
    """
    if period not in REPORT_PERIODS:
        raise ValueError(f"不支持的报表类型：{period}，仅支持 {'/'.join(REPORT_PERIODS)}")

    rows = []
    for transaction in transactions:
        if transaction.get("fund_status") != FundStatus.COMPLETED.value:
            continue
        created = parse_datetime(transaction.get("created_date"))
        if created is None:
            continue
        key, label = period_key(created, period)
        breakdown = calculate_breakdown(transaction)
        rows.append({
            "key": key,
            "label": label,
            "commission": float(breakdown.commission_usdt),
            "fees": float(breakdown.fee_usdt),
            "exchange_profit": float(breakdown.exchange_profit),
            "total_profit": float(breakdown.total_profit),
        })

    if not rows:
        return []

    df = pd.DataFrame(rows)
    df_agg = df.groupby(["key", "label"], as_index=False).agg(
        count=("commission", "size"),
        commission=("commission", "sum"),
        fees=("fees", "sum"),
        exchange_profit=("exchange_profit", "sum"),
        total_profit=("total_profit", "sum"),
    )
    df_agg = df_agg.sort_values("key", ascending=False)

    report = []
    for _, row in df_agg[_REPORT_COLUMNS].iterrows():
        report.append({
            "key": row["key"],
            "label": row["label"],
            "count": int(row["count"]),
            "commission": round(float(row["commission"]), 2),
            "fees": round(float(row["fees"]), 2),
            "exchange_profit": round(float(row["exchange_profit"]), 2),
            "total_profit": round(float(row["total_profit"]), 2),
        })
    logger.info(f"盈利报表生成完成: 类型={period}, 时间段数={len(report)}")
    return report


def _matches_detail_type(transaction: Mapping[str, Any], detail_type: str) -> bool:
    status = transaction.get("fund_status")
    completed = status == FundStatus.COMPLETED.value
    penalty = to_decimal(transaction.get("violation_penalty"))

    if detail_type == "frozen":
        return status == FundStatus.FROZEN_UNPROCESSABLE.value
    # 已退回交易不计入任何盈利项
    if status == FundStatus.RETURNED.value:
        return False
    if detail_type == "profit":
        return completed or penalty > 0
    if detail_type == "commission":
        return completed and to_decimal(transaction.get("commission_percentage")) > 0
    if detail_type == "fee":
        return completed and to_decimal(transaction.get("transfer_fee")) > 0
    if detail_type == "exchange":
        return completed
    if detail_type == "penalty":
        return penalty > 0
    return False


def build_profit_details(transactions: Iterable[Mapping[str, Any]], detail_type: str,
                         window: Optional[TimeWindow] = None) -> Dict[str, Any]:
    """盈利明细下钻：返回该类型下的交易及合计"""
    if detail_type not in DETAIL_TYPES:
        raise ValueError(f"不支持的明细类型：{detail_type}，仅支持 {'/'.join(DETAIL_TYPES)}")
    title, field = DETAIL_TYPES[detail_type]

    rows = []
    total = to_decimal(0)
    for transaction in filter_by_window(transactions, window):
        if not _matches_detail_type(transaction, detail_type):
            continue
        breakdown = calculate_breakdown(transaction)
        value = getattr(breakdown, field)
        total += value
        row = {
            "id": transaction.get("id"),
            "transaction_number": transaction.get("transaction_number"),
            "customer_name": transaction.get("customer_name"),
            "currency": transaction.get("currency"),
            "deposit_amount": float(to_decimal(transaction.get("deposit_amount"))),
            "exchange_rate": float(to_decimal(transaction.get("exchange_rate"))),
            "commission_percentage": float(to_decimal(transaction.get("commission_percentage"))),
            "fund_status": transaction.get("fund_status"),
            "created_date": transaction.get("created_date"),
            "value": round_amount(value),
        }
        row.update({name: round_amount(amount) for name, amount in breakdown.to_dict().items()})
        rows.append(row)

    return {
        "detail_type": detail_type,
        "title": title,
        "count": len(rows),
        "total": round_amount(total),
        "rows": rows,
    }


def count_by_status(transactions: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    counts = {status: 0 for status in ALL_FUND_STATUSES}
    for transaction in transactions:
        status = transaction.get("fund_status")
        if status in counts:
            counts[status] += 1
    return counts


def deposits_by_currency(transactions: Iterable[Mapping[str, Any]]) -> Dict[str, float]:
    """按币种代码汇总入金金额（原币），缺少币种记为 OTHER；已退回不计入"""
    totals = defaultdict(lambda: to_decimal(0))
    for transaction in transactions:
        if transaction.get("fund_status") == FundStatus.RETURNED.value:
            continue
        code = currency_code(transaction.get("currency")) or "OTHER"
        totals[code] += to_decimal(transaction.get("deposit_amount"))
    return {code: round_amount(amount) for code, amount in sorted(totals.items())}


def account_stats(transactions: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """入款公司 -> 币种 -> 入款账号 三级入金统计，已退回不计入"""
    rows = [{
        "company": t.get("receiving_account_name") or "未知公司",
        "currency": t.get("currency") or "未知币种",
        "account": t.get("receiving_account_number") or "未知账号",
        "deposit_amount": float(to_decimal(t.get("deposit_amount"))),
    } for t in transactions if t.get("fund_status") != FundStatus.RETURNED.value]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    df_accounts = df.groupby(["company", "currency", "account"], as_index=False).agg(
        count=("deposit_amount", "size"),
        total_deposit=("deposit_amount", "sum"),
    )

    companies = {}
    for _, row in df_accounts.iterrows():
        company = companies.setdefault(row["company"], {
            "company": row["company"], "count": 0, "total_deposit": 0.0, "currencies": {}
        })
        currency = company["currencies"].setdefault(row["currency"], {
            "currency": row["currency"], "count": 0, "total_deposit": 0.0, "accounts": []
        })
        count = int(row["count"])
        amount = float(row["total_deposit"])
        currency["accounts"].append({"account": row["account"], "count": count, "total_deposit": round(amount, 2)})
        currency["count"] += count
        currency["total_deposit"] += amount
        company["count"] += count
        company["total_deposit"] += amount

    result = []
    for company in companies.values():
        currencies = list(company["currencies"].values())
        for currency in currencies:
            currency["total_deposit"] = round(currency["total_deposit"], 2)
        company["currencies"] = currencies
        company["total_deposit"] = round(company["total_deposit"], 2)
        result.append(company)
    result.sort(key=lambda x: x["total_deposit"], reverse=True)
    return result


def maintenance_alerts(transactions: Iterable[Mapping[str, Any]],
                       today: Optional[date] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    维护期提醒：
    - expiring_today: 今日到期
    - expiring_soon: 1-3天内到期
    - expired: 已过期且未完成交易
    """
    today = today or date.today()
    alerts = {"expiring_today": [], "expiring_soon": [], "expired": []}
    for transaction in transactions:
        end_date = parse_date(transaction.get("maintenance_end_date"))
        if end_date is None:
            continue
        days_left = (end_date - today).days
        item = {
            "id": transaction.get("id"),
            "transaction_number": transaction.get("transaction_number"),
            "customer_name": transaction.get("customer_name"),
            "fund_status": transaction.get("fund_status"),
            "maintenance_end_date": end_date.isoformat(),
            "days_left": days_left,
        }
        if days_left == 0:
            alerts["expiring_today"].append(item)
        elif 1 <= days_left <= 3:
            alerts["expiring_soon"].append(item)
        elif days_left < 0 and transaction.get("fund_status") != FundStatus.COMPLETED.value:
            alerts["expired"].append(item)
    return alerts
