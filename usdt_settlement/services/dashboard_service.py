import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..profit_calculator import aggregate_profit
from ..reports import (account_stats, build_profit_details, build_profit_report, count_by_status,
                       deposits_by_currency, filter_by_window, maintenance_alerts)
from ..utils import resolve_time_window, time_window_label
from .transaction_service import TransactionService

logger = logging.getLogger(__name__)


class DashboardService:
    """仪表盘与盈利报表服务类"""

    def __init__(self, db: Session):
        self.transactions = TransactionService(db)
        self.logger = logging.getLogger(__name__)

    def profit_metrics(self, time_filter: str = "all", year: Optional[int] = None,
                       quarter: Optional[str] = None) -> Dict[str, Any]:
        """指定时间范围内的实际/预估盈利汇总"""
        window = resolve_time_window(time_filter, year, quarter)
        records = self.transactions.list_transactions()
        metrics = aggregate_profit(records, window)

        result = metrics.to_dict()
        result["time_filter_label"] = time_window_label(window)
        self.logger.info(f"盈利统计完成: 范围={result['time_filter_label']}, "
                         f"实际盈利={result['profit']:.2f}, 预估盈利={result['estimated_profit']:.2f}")
        return result

    def overview(self, time_filter: str = "all", year: Optional[int] = None,
                 quarter: Optional[str] = None, today: Optional[date] = None) -> Dict[str, Any]:
        """状态分布、币种入金、入款账户统计，以及维护期提醒（不受时间范围影响）"""
        window = resolve_time_window(time_filter, year, quarter)
        records = self.transactions.list_transactions()
        scoped = filter_by_window(records, window)

        return {
            "time_filter_label": time_window_label(window),
            "total_count": len(scoped),
            "status_counts": count_by_status(scoped),
            "deposits_by_currency": deposits_by_currency(scoped),
            "account_stats": account_stats(scoped),
            "maintenance_alerts": maintenance_alerts(records, today),
        }

    def profit_report(self, period: str = "month") -> list:
        return build_profit_report(self.transactions.list_transactions(), period)

    def profit_details(self, detail_type: str, time_filter: str = "all", year: Optional[int] = None,
                       quarter: Optional[str] = None) -> Dict[str, Any]:
        window = resolve_time_window(time_filter, year, quarter)
        details = build_profit_details(self.transactions.list_transactions(), detail_type, window)
        details["time_filter_label"] = time_window_label(window)
        return details
