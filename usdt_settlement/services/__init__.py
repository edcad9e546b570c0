from .transaction_service import TransactionService
from .dashboard_service import DashboardService
from .exchange_rate_service import ExchangeRateService
from .ai_service import AiService
from .analytics_service import AnalyticsService
from .risk_monitor_service import RiskMonitorService
from .expense_service import ExpenseService

__all__ = [
    "TransactionService",
    "DashboardService",
    "ExchangeRateService",
    "AiService",
    "AnalyticsService",
    "RiskMonitorService",
    "ExpenseService"
]
