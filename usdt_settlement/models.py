from datetime import date, datetime

from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any, Literal

FundStatusLiteral = Literal[
    "等待中", "已退回", "已到账", "承兑中", "已完成交易",
    "风控调解中", "冻结（正在处理）", "冻结（不能处理）"
]
TimeFilterLiteral = Literal["today", "month", "quarter", "year", "all"]


class ApiResponse(BaseModel):
    """通用响应模型"""
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: Optional[Any] = Field(None, description="结果数据")
    request_id: str = Field(..., description="请求ID，用于追踪")


# 交易相关模型
class TransactionBase(BaseModel):
    """交易录入字段，未传入的字段由服务端填充默认值"""
    transaction_number: Optional[str] = Field(None, description="交易编号，格式YYYYMMDD/0001，为空时自动生成")
    customer_name: Optional[str] = Field(None, description="客户姓名")
    customer_age: Optional[str] = Field(None, description="客户年龄")
    customer_nationality: Optional[str] = Field(None, description="客户国籍")
    receiving_account_name: Optional[str] = Field(None, description="入款公司")
    receiving_account_number: Optional[str] = Field(None, description="入款账号")
    bank_name: Optional[str] = Field(None, description="银行名称")
    bank_account: Optional[str] = Field(None, description="银行账号")
    bank_address: Optional[str] = Field(None, description="银行地址")
    bank_location: Optional[str] = Field(None, description="银行所在地")
    currency: Optional[str] = Field(None, description="币种，如 EUR欧元")
    deposit_amount: Optional[float] = Field(None, ge=0, description="入金金额（原币）")
    remittance_count: Optional[int] = Field(None, ge=1, description="汇款笔数")
    deposit_date: Optional[date] = Field(None, description="入金日期，默认当天")
    maintenance_days: Optional[int] = Field(None, ge=0, description="维护期天数，默认15")
    exchange_rate: Optional[float] = Field(None, ge=0, description="汇率（每1 USDT对应的原币数）")
    commission_percentage: Optional[float] = Field(None, ge=0, description="佣金百分比（点位）")
    calculation_mode: Optional[Literal["进算", "拖算"]] = Field(None, description="进算/拖算")
    transfer_fee: Optional[float] = Field(None, ge=0, description="转账手续费（原币）")
    violation_penalty: Optional[float] = Field(None, description="违规赔偿（USDT）")
    fund_status: Optional[FundStatusLiteral] = Field(None, description="资金状态")
    acceptance_usdt: Optional[float] = Field(None, ge=0, description="承兑回USDT（手动输入）")


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(TransactionBase):
    pass


class TransactionItem(TransactionBase):
    id: int = Field(..., description="交易ID")
    settlement_usdt: Optional[float] = Field(None, description="结算USDT")
    maintenance_end_date: Optional[date] = Field(None, description="维护期到期日")
    created_date: Optional[datetime] = Field(None, description="创建时间")
    updated_date: Optional[datetime] = Field(None, description="更新时间")


class TransactionResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: Optional[TransactionItem] = Field(None, description="交易数据")
    request_id: str = Field(..., description="请求ID")


class TransactionListResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: List[TransactionItem] = Field(default_factory=list, description="交易列表")
    total: int = Field(..., description="总数")
    request_id: str = Field(..., description="请求ID")


class TransactionNumberRequest(BaseModel):
    trade_date: Optional[date] = Field(None, description="交易日期，默认当天")


# 盈利统计相关模型
class ProfitMetricsData(BaseModel):
    """盈利统计（USDT）"""
    commission: float = Field(..., description="实际佣金收入")
    transfer_fee: float = Field(..., description="实际手续费收入")
    exchange_rate_profit: float = Field(..., description="实际汇率差盈亏")
    violation_penalty: float = Field(..., description="违规赔偿（所有未退回交易）")
    profit: float = Field(..., description="实际盈利")
    completed_count: int = Field(..., description="已完成交易笔数")
    estimated_commission: float = Field(..., description="预计佣金")
    estimated_transfer_fee: float = Field(..., description="预计手续费")
    estimated_exchange_rate_profit: float = Field(..., description="预计汇率差盈亏")
    estimated_violation_penalty: float = Field(..., description="预计违规赔偿")
    estimated_profit: float = Field(..., description="总预估盈利")
    estimated_count: int = Field(..., description="预估口径交易笔数")
    frozen_funds: float = Field(..., description="冻结资金（不能处理）USDT估值")
    time_filter_label: str = Field(..., description="时间范围名称")


class ProfitMetricsResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: ProfitMetricsData = Field(..., description="盈利统计")
    request_id: str = Field(..., description="请求ID")


class ProfitReportRow(BaseModel):
    key: str = Field(..., description="排序键，如2025-03、2025-Q1、2025")
    label: str = Field(..., description="时间段名称")
    count: int = Field(..., description="交易笔数")
    commission: float = Field(..., description="佣金(USDT)")
    fees: float = Field(..., description="手续费(USDT)")
    exchange_profit: float = Field(..., description="汇率差盈亏(USDT)")
    total_profit: float = Field(..., description="总盈利(USDT)")


class ProfitReportResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: List[ProfitReportRow] = Field(default_factory=list, description="报表数据")
    request_id: str = Field(..., description="请求ID")


# 汇率
class ExchangeRateRequest(BaseModel):
    currency_code: str = Field(..., min_length=3, description="币种代码或名称，如 EUR 或 EUR欧元")


class ExpenseRateRequest(BaseModel):
    currency: str = Field(..., min_length=3, description="开销币种，如 EUR欧元")


# 智能分析
class SmartAnalyticsRequest(BaseModel):
    analysis_type: Optional[Literal["profit_trend", "currency_performance", "customer_behavior",
                                    "comprehensive"]] = Field(None, description="分析类型，为空时综合分析")
    time_filter: TimeFilterLiteral = Field("all", description="时间范围")
    year: Optional[int] = Field(None, ge=2000, le=2100, description="年份")
    quarter: Optional[str] = Field(None, description="季度 Q1-Q4")
    with_ai_insights: bool = Field(True, description="是否生成AI洞察")


# 开销记账相关模型
class ExpenseCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, description="分类名称")
    icon: Optional[str] = Field(None, description="图标")
    color: Optional[str] = Field(None, description="颜色")
    budget_limit: Optional[float] = Field(None, ge=0, description="预算上限(USDT)")


class ExpenseCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, description="分类名称")
    icon: Optional[str] = Field(None, description="图标")
    color: Optional[str] = Field(None, description="颜色")
    budget_limit: Optional[float] = Field(None, ge=0, description="预算上限(USDT)")


class ExpenseCreate(BaseModel):
    title: str = Field(..., min_length=1, description="开销标题")
    quantity: int = Field(1, ge=1, description="数量")
    amount: float = Field(..., ge=0, description="单价（原币）")
    currency: Literal["EUR欧元", "MYR马币", "USD美元"] = Field("USD美元", description="币种")
    exchange_rate: Optional[float] = Field(None, gt=0, description="汇率（每1单位原币对应的USDT），为空时自动获取")
    usdt_amount: Optional[float] = Field(None, ge=0, description="USDT金额，为空时自动计算")
    category: Optional[str] = Field(None, description="分类名称")
    expense_date: Optional[date] = Field(None, description="开销日期，默认当天")
    payment_method: Literal["现金", "银行卡", "支付宝", "微信", "信用卡", "其他"] = Field("现金", description="支付方式")
    description: Optional[str] = Field(None, description="备注")


class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, description="开销标题")
    quantity: Optional[int] = Field(None, ge=1, description="数量")
    amount: Optional[float] = Field(None, ge=0, description="单价（原币）")
    currency: Optional[Literal["EUR欧元", "MYR马币", "USD美元"]] = Field(None, description="币种")
    exchange_rate: Optional[float] = Field(None, gt=0, description="汇率")
    usdt_amount: Optional[float] = Field(None, ge=0, description="USDT金额")
    category: Optional[str] = Field(None, description="分类名称")
    expense_date: Optional[date] = Field(None, description="开销日期")
    payment_method: Optional[Literal["现金", "银行卡", "支付宝", "微信", "信用卡", "其他"]] = Field(None, description="支付方式")
    description: Optional[str] = Field(None, description="备注")


class CategoryBudgetItem(BaseModel):
    name: str = Field(..., description="分类名称")
    amount: float = Field(..., description="开销合计(USDT)")
    count: int = Field(..., description="笔数")
    budget_limit: float = Field(..., description="预算上限")
    usage_percent: Optional[float] = Field(None, description="预算使用率(%)，无预算时为空")
    over_budget: bool = Field(..., description="是否超预算")


class ExpenseDashboardData(BaseModel):
    total_expense: float = Field(..., description="总开销(USDT)")
    expense_count: int = Field(..., description="开销笔数")
    today_total: float = Field(..., description="今日开销(USDT)")
    change_percent: float = Field(..., description="与上月相比变化(%)")
    categories: List[CategoryBudgetItem] = Field(default_factory=list, description="分类统计")
    recent_expenses: List[Dict[str, Any]] = Field(default_factory=list, description="最近开销")


class ExpenseDashboardResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: ExpenseDashboardData = Field(..., description="开销看板")
    request_id: str = Field(..., description="请求ID")
