# usdt_settlement/profit_calculator.py
"""
入金交易盈利计算。

仪表盘、盈利报表、明细下钻、智能分析、风控监控共用本模块的公式，
所有结果均以 USDT 计价。交易以字典（或任意 Mapping）传入，字段可能缺失
或不是数字，一律按 0 处理，不抛异常。

两套口径：
- 实际（actual）：只统计"已完成交易"的佣金/手续费/汇率差，违规赔偿统计所有未退回交易；
  承兑回USDT未填写时，以理论结算USDT代替。
- 预估（estimated）：统计所有未退回交易；承兑回USDT未填写时，以
  理论结算USDT + 佣金 + 手续费代替。

两种承兑兜底规则不同，与历史报表保持一致，不要合并。
"""
import logging
from dataclasses import asdict, dataclass
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from .utils import TimeWindow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# 计算时不触发 Overflow/InvalidOperation，溢出结果由 _finite 归零
_CALC_CONTEXT = Context(prec=28, traps=[])


def _finite(value: Decimal) -> Decimal:
    return value if value.is_finite() else ZERO


class FundStatus(str, Enum):
    PENDING = "等待中"
    RETURNED = "已退回"
    RECEIVED = "已到账"
    ACCEPTING = "承兑中"
    COMPLETED = "已完成交易"
    RISK_MEDIATION = "风控调解中"
    FROZEN_PROCESSING = "冻结（正在处理）"
    FROZEN_UNPROCESSABLE = "冻结（不能处理）"


ALL_FUND_STATUSES = [status.value for status in FundStatus]

# 写入时佣金、手续费、结算USDT清零的状态
ZEROED_FEE_STATUSES = {FundStatus.RETURNED.value, FundStatus.FROZEN_UNPROCESSABLE.value}


def to_decimal(value: Any) -> Decimal:
    """缺失、非数字、NaN、Infinity 均视为 0"""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    return number if number.is_finite() else ZERO


def to_usdt(native_amount: Any, exchange_rate: Any) -> Decimal:
    """原币金额按汇率（每1 USDT对应的原币数）换算为USDT，汇率无效时为0"""
    rate = to_decimal(exchange_rate)
    if rate <= 0:
        return ZERO
    with localcontext(_CALC_CONTEXT):
        return _finite(to_decimal(native_amount) / rate)


def initial_usdt(transaction: Mapping[str, Any]) -> Decimal:
    """入金按面值换算的USDT，汇率差盈亏以此为基准"""
    return to_usdt(transaction.get("deposit_amount"), transaction.get("exchange_rate"))


def commission_native(transaction: Mapping[str, Any]) -> Decimal:
    deposit = to_decimal(transaction.get("deposit_amount"))
    with localcontext(_CALC_CONTEXT):
        return _finite(deposit * to_decimal(transaction.get("commission_percentage")) / HUNDRED)


def theoretical_settlement_usdt(transaction: Mapping[str, Any]) -> Decimal:
    """理论结算USDT = (入金 - 手续费 - 佣金) / 汇率；冻结（不能处理）为0"""
    if transaction.get("fund_status") == FundStatus.FROZEN_UNPROCESSABLE.value:
        return ZERO
    deposit = to_decimal(transaction.get("deposit_amount"))
    with localcontext(_CALC_CONTEXT):
        net_native = _finite(deposit - to_decimal(transaction.get("transfer_fee")) - commission_native(transaction))
    return to_usdt(net_native, transaction.get("exchange_rate"))


@dataclass(frozen=True)
class ProfitBreakdown:
    """单笔交易的盈利拆分（USDT）"""
    commission_usdt: Decimal
    fee_usdt: Decimal
    exchange_profit: Decimal
    penalty_usdt: Decimal
    total_profit: Decimal
    initial_usdt: Decimal
    actual_acceptance: Decimal
    settlement_usdt: Decimal
    estimated_acceptance: Decimal
    estimated_exchange_profit: Decimal
    estimated_profit: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {name: float(value) for name, value in asdict(self).items()}


def calculate_breakdown(transaction: Mapping[str, Any]) -> ProfitBreakdown:
    """
    计算单笔交易对各盈利项的贡献。

    total_profit 为"实际"口径：已完成交易 = 佣金 + 手续费 + 汇率差 + 违规赔偿，
    其他未退回状态只计违规赔偿，已退回为0。
    estimated_profit 为"预估"口径，已退回同样为0。
    """
    status = transaction.get("fund_status")
    rate = to_decimal(transaction.get("exchange_rate"))
    acceptance = to_decimal(transaction.get("acceptance_usdt"))
    penalty = to_decimal(transaction.get("violation_penalty"))

    commission_usdt = to_usdt(commission_native(transaction), rate)
    fee_usdt = to_usdt(transaction.get("transfer_fee"), rate)
    initial = initial_usdt(transaction)
    settlement = theoretical_settlement_usdt(transaction)

    with localcontext(_CALC_CONTEXT):
        if rate > 0:
            actual_acceptance = acceptance if acceptance > 0 else settlement
            estimated_acceptance = acceptance if acceptance > 0 else settlement + commission_usdt + fee_usdt
            exchange_profit = actual_acceptance - initial
            estimated_exchange_profit = estimated_acceptance - initial
        else:
            # 汇率无效：不产生任何换算类盈亏
            actual_acceptance = estimated_acceptance = acceptance if acceptance > 0 else ZERO
            exchange_profit = estimated_exchange_profit = ZERO

        if status == FundStatus.RETURNED.value:
            total_profit = estimated_profit = ZERO
        else:
            estimated_profit = commission_usdt + fee_usdt + estimated_exchange_profit + penalty
            if status == FundStatus.COMPLETED.value:
                total_profit = commission_usdt + fee_usdt + exchange_profit + penalty
            else:
                total_profit = penalty

    return ProfitBreakdown(
        commission_usdt=commission_usdt,
        fee_usdt=fee_usdt,
        exchange_profit=_finite(exchange_profit),
        penalty_usdt=penalty,
        total_profit=_finite(total_profit),
        initial_usdt=initial,
        actual_acceptance=actual_acceptance,
        settlement_usdt=settlement,
        estimated_acceptance=_finite(estimated_acceptance),
        estimated_exchange_profit=_finite(estimated_exchange_profit),
        estimated_profit=_finite(estimated_profit),
    )


@dataclass
class ProfitMetrics:
    """一组交易的盈利汇总（USDT）"""
    commission: Decimal = ZERO
    transfer_fee: Decimal = ZERO
    exchange_rate_profit: Decimal = ZERO
    violation_penalty: Decimal = ZERO
    completed_count: int = 0
    estimated_commission: Decimal = ZERO
    estimated_transfer_fee: Decimal = ZERO
    estimated_exchange_rate_profit: Decimal = ZERO
    estimated_violation_penalty: Decimal = ZERO
    estimated_count: int = 0
    frozen_funds: Decimal = ZERO

    @property
    def profit(self) -> Decimal:
        with localcontext(_CALC_CONTEXT):
            return _finite(self.commission + self.transfer_fee + self.exchange_rate_profit + self.violation_penalty)

    @property
    def estimated_profit(self) -> Decimal:
        with localcontext(_CALC_CONTEXT):
            return _finite(self.estimated_commission + self.estimated_transfer_fee
                           + self.estimated_exchange_rate_profit + self.estimated_violation_penalty)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commission": float(_finite(self.commission)),
            "transfer_fee": float(_finite(self.transfer_fee)),
            "exchange_rate_profit": float(_finite(self.exchange_rate_profit)),
            "violation_penalty": float(_finite(self.violation_penalty)),
            "profit": float(self.profit),
            "completed_count": self.completed_count,
            "estimated_commission": float(_finite(self.estimated_commission)),
            "estimated_transfer_fee": float(_finite(self.estimated_transfer_fee)),
            "estimated_exchange_rate_profit": float(_finite(self.estimated_exchange_rate_profit)),
            "estimated_violation_penalty": float(_finite(self.estimated_violation_penalty)),
            "estimated_profit": float(self.estimated_profit),
            "estimated_count": self.estimated_count,
            "frozen_funds": float(_finite(self.frozen_funds)),
        }


def aggregate_profit(transactions: Iterable[Mapping[str, Any]],
                     window: Optional[TimeWindow] = None) -> ProfitMetrics:
    """
    汇总实际/预估盈利及冻结资金。

    :param transactions: 交易列表，顺序不影响结果
    :param window: 按 created_date 筛选的时间窗口，None 表示不限
    """
    with localcontext(_CALC_CONTEXT):
        return _accumulate(transactions, window)


def _accumulate(transactions: Iterable[Mapping[str, Any]], window: Optional[TimeWindow]) -> ProfitMetrics:
    metrics = ProfitMetrics()

    for transaction in transactions:
        if window is not None and not window.contains(transaction.get("created_date")):
            continue
        status = transaction.get("fund_status")
        if status == FundStatus.RETURNED.value:
            continue

        breakdown = calculate_breakdown(transaction)

        # 违规赔偿不区分状态
        metrics.violation_penalty += breakdown.penalty_usdt
        metrics.estimated_violation_penalty += breakdown.penalty_usdt

        if status == FundStatus.COMPLETED.value:
            metrics.commission += breakdown.commission_usdt
            metrics.transfer_fee += breakdown.fee_usdt
            metrics.exchange_rate_profit += breakdown.exchange_profit
            metrics.completed_count += 1

        metrics.estimated_commission += breakdown.commission_usdt
        metrics.estimated_transfer_fee += breakdown.fee_usdt
        metrics.estimated_exchange_rate_profit += breakdown.estimated_exchange_profit
        metrics.estimated_count += 1

        if status == FundStatus.FROZEN_UNPROCESSABLE.value:
            metrics.frozen_funds += breakdown.initial_usdt

    return metrics


def normalize_transaction(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    保存前的状态修正，返回新字典：

    - 已退回 / 冻结（不能处理）：佣金百分比、转账手续费、结算USDT 清零
    - 已退回：承兑回USDT 清零
    - 其余状态：结算USDT 按理论值重算并保留两位小数
    """
    normalized = dict(data)
    status = normalized.get("fund_status")

    if status in ZEROED_FEE_STATUSES:
        normalized["commission_percentage"] = 0
        normalized["transfer_fee"] = 0
        normalized["settlement_usdt"] = 0.0
    else:
        settlement = theoretical_settlement_usdt(normalized)
        with localcontext(_CALC_CONTEXT):
            settlement = _finite(settlement.quantize(Decimal("0.00"), rounding=ROUND_HALF_UP))
        normalized["settlement_usdt"] = float(settlement)

    if status == FundStatus.RETURNED.value:
        normalized["acceptance_usdt"] = 0

    return normalized
