import logging
import time as _time
import uuid
from datetime import date
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from . import orm_models  # noqa: F401  注册数据表
from .config import settings
from .database import Base, engine, get_db
from .models import (
    ApiResponse, TransactionCreate, TransactionUpdate, TransactionResponse, TransactionListResponse,
    TransactionNumberRequest, ProfitMetricsResponse, ProfitReportResponse, ExchangeRateRequest,
    ExpenseRateRequest, SmartAnalyticsRequest, ExpenseCategoryCreate, ExpenseCategoryUpdate,
    ExpenseCreate, ExpenseUpdate, ExpenseDashboardResponse, FundStatusLiteral, TimeFilterLiteral
)
from .services import (
    TransactionService, DashboardService, ExchangeRateService, AiService, AnalyticsService,
    RiskMonitorService, ExpenseService
)
from .utils import RecordNotFoundError, resolve_time_window

# 配置日志
logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# 建表（已存在的表不会重复创建）
Base.metadata.create_all(bind=engine)

# 创建FastAPI应用
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.DESCRIPTION
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境中应指定具体的 origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 服务依赖
def get_transaction_service(db: Session = Depends(get_db)):
    return TransactionService(db)


def get_dashboard_service(db: Session = Depends(get_db)):
    return DashboardService(db)


def get_exchange_rate_service():
    return ExchangeRateService()


def get_ai_service():
    return AiService()


def get_analytics_service(db: Session = Depends(get_db), ai_service: AiService = Depends(get_ai_service)):
    return AnalyticsService(db, ai_service=ai_service)


def get_risk_monitor_service(db: Session = Depends(get_db), ai_service: AiService = Depends(get_ai_service)):
    return RiskMonitorService(db, ai_service=ai_service)


def get_expense_service(db: Session = Depends(get_db),
                        rate_service: ExchangeRateService = Depends(get_exchange_rate_service)):
    return ExpenseService(db, rate_service=rate_service)


def _failed(tag: str, request_id: str, start_time: float, e: Exception) -> HTTPException:
    """记录失败日志并转换为HTTP错误"""
    elapsed = round(_time.time() - start_time, 2)
    if isinstance(e, RecordNotFoundError):
        logger.warning(f"[{tag}] 未找到 | 请求ID: {request_id} | 耗时: {elapsed}秒 | 错误: {str(e)}")
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValueError):
        logger.warning(f"[{tag}] 参数错误 | 请求ID: {request_id} | 耗时: {elapsed}秒 | 错误: {str(e)}")
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"[{tag}] 失败 | 请求ID: {request_id} | 耗时: {elapsed}秒 | 错误: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


def _done(tag: str, request_id: str, start_time: float, summary: str = "") -> None:
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[{tag}] 完成 | 请求ID: {request_id} | 耗时: {elapsed}秒" + (f" | {summary}" if summary else ""))


# 交易管理接口
@app.post("/transactions", response_model=TransactionResponse, tags=["交易管理"])
async def create_transaction(
        request: TransactionCreate,
        service: TransactionService = Depends(get_transaction_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[新增交易] 开始 | 请求ID: {request_id}")
    logger.info(f"[新增交易] 参数: 客户={request.customer_name}, 币种={request.currency}, "
                f"入金={request.deposit_amount}, 状态={request.fund_status}")

    try:
        result = service.create(request.model_dump(exclude_none=True))
        _done("新增交易", request_id, start_time, f"编号: {result['transaction_number']}")
        return {"success": True, "message": "交易创建成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("新增交易", request_id, start_time, e)


@app.get("/transactions", response_model=TransactionListResponse, tags=["交易管理"])
async def list_transactions(
        fund_status: Optional[FundStatusLiteral] = Query(None, description="资金状态"),
        service: TransactionService = Depends(get_transaction_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.list_transactions(fund_status=fund_status)
        _done("交易列表", request_id, start_time, f"数据条数: {len(result)}")
        return {"success": True, "message": "获取成功", "data": result, "total": len(result),
                "request_id": request_id}
    except Exception as e:
        raise _failed("交易列表", request_id, start_time, e)


@app.delete("/transactions", response_model=ApiResponse, tags=["交易管理"])
async def delete_all_transactions(service: TransactionService = Depends(get_transaction_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.warning(f"[删除全部交易] 开始 | 请求ID: {request_id}")
    try:
        deleted = service.delete_all()
        _done("删除全部交易", request_id, start_time, f"删除条数: {deleted}")
        return {"success": True, "message": f"已删除 {deleted} 条交易", "data": {"deleted_count": deleted},
                "request_id": request_id}
    except Exception as e:
        raise _failed("删除全部交易", request_id, start_time, e)


@app.post("/transactions/number", response_model=ApiResponse, tags=["交易管理"])
async def generate_transaction_number(
        request: TransactionNumberRequest,
        service: TransactionService = Depends(get_transaction_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.generate_transaction_number(request.trade_date)
        _done("生成编号", request_id, start_time, f"编号: {result['transaction_number']}")
        return {"success": True, "message": "生成成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("生成编号", request_id, start_time, e)


@app.post("/transactions/recalculate-returned", response_model=ApiResponse, tags=["交易管理"])
async def recalculate_returned_transactions(service: TransactionService = Depends(get_transaction_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[重算已退回交易] 开始 | 请求ID: {request_id}")
    try:
        result = service.recalculate_returned()
        _done("重算已退回交易", request_id, start_time, f"更新条数: {result['total_updated']}")
        return {"success": True, "message": "已成功重算所有已退回交易", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("重算已退回交易", request_id, start_time, e)


@app.get("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["交易管理"])
async def get_transaction(transaction_id: int, service: TransactionService = Depends(get_transaction_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.get(transaction_id)
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("交易详情", request_id, start_time, e)


@app.put("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["交易管理"])
async def update_transaction(
        transaction_id: int,
        request: TransactionUpdate,
        service: TransactionService = Depends(get_transaction_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    changes = request.model_dump(exclude_unset=True)
    logger.info(f"[更新交易] 开始 | 请求ID: {request_id}")
    logger.info(f"[更新交易] 参数: ID={transaction_id}, 字段={list(changes)}")
    try:
        result = service.update(transaction_id, changes)
        _done("更新交易", request_id, start_time, f"状态: {result['fund_status']}")
        return {"success": True, "message": "交易更新成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("更新交易", request_id, start_time, e)


@app.delete("/transactions/{transaction_id}", response_model=ApiResponse, tags=["交易管理"])
async def delete_transaction(transaction_id: int, service: TransactionService = Depends(get_transaction_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        service.delete(transaction_id)
        _done("删除交易", request_id, start_time, f"ID: {transaction_id}")
        return {"success": True, "message": "交易已删除", "data": {"id": transaction_id}, "request_id": request_id}
    except Exception as e:
        raise _failed("删除交易", request_id, start_time, e)


# 盈利统计接口
@app.get("/dashboard/profit", response_model=ProfitMetricsResponse, tags=["盈利统计"])
async def get_profit_metrics(
        time_filter: TimeFilterLiteral = Query("all", description="时间范围"),
        year: Optional[int] = Query(None, description="年份"),
        quarter: Optional[str] = Query(None, description="季度 Q1-Q4"),
        service: DashboardService = Depends(get_dashboard_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[盈利统计] 开始 | 请求ID: {request_id}")
    logger.info(f"[盈利统计] 参数: 时间范围={time_filter}, 年份={year}, 季度={quarter}")
    try:
        result = service.profit_metrics(time_filter, year, quarter)
        _done("盈利统计", request_id, start_time, f"实际盈利: {result['profit']:.2f}")
        return {"success": True, "message": "统计完成", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("盈利统计", request_id, start_time, e)


@app.get("/dashboard/overview", response_model=ApiResponse, tags=["盈利统计"])
async def get_dashboard_overview(
        time_filter: TimeFilterLiteral = Query("all", description="时间范围"),
        year: Optional[int] = Query(None, description="年份"),
        quarter: Optional[str] = Query(None, description="季度 Q1-Q4"),
        service: DashboardService = Depends(get_dashboard_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.overview(time_filter, year, quarter)
        _done("仪表盘概览", request_id, start_time, f"交易数: {result['total_count']}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("仪表盘概览", request_id, start_time, e)


@app.get("/reports/profit", response_model=ProfitReportResponse, tags=["盈利统计"])
async def get_profit_report(
        period: str = Query("month", description="报表类型 month/quarter/year"),
        service: DashboardService = Depends(get_dashboard_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[盈利报表] 开始 | 请求ID: {request_id} | 类型: {period}")
    try:
        result = service.profit_report(period)
        _done("盈利报表", request_id, start_time, f"时间段数: {len(result)}")
        return {"success": True, "message": "生成成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("盈利报表", request_id, start_time, e)


@app.get("/reports/profit-details", response_model=ApiResponse, tags=["盈利统计"])
async def get_profit_details(
        detail_type: str = Query(..., description="明细类型 profit/commission/fee/exchange/penalty/frozen"),
        time_filter: TimeFilterLiteral = Query("all", description="时间范围"),
        year: Optional[int] = Query(None, description="年份"),
        quarter: Optional[str] = Query(None, description="季度 Q1-Q4"),
        service: DashboardService = Depends(get_dashboard_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.profit_details(detail_type, time_filter, year, quarter)
        _done("盈利明细", request_id, start_time, f"类型: {detail_type} | 条数: {result['count']}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("盈利明细", request_id, start_time, e)


# 汇率接口
@app.post("/exchange-rate", response_model=ApiResponse, tags=["汇率"])
async def get_deposit_exchange_rate(
        request: ExchangeRateRequest,
        service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.get_deposit_rate(request.currency_code)
        _done("入金汇率", request_id, start_time, f"{result['currency']}: {result['rate']}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except RuntimeError as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.error(f"[入金汇率] 上游失败 | 请求ID: {request_id} | 耗时: {elapsed}秒 | 错误: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise _failed("入金汇率", request_id, start_time, e)


# 智能分析与风控
@app.post("/analytics/smart", response_model=ApiResponse, tags=["智能分析"])
async def smart_analytics(
        request: SmartAnalyticsRequest,
        service: AnalyticsService = Depends(get_analytics_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[智能分析] 开始 | 请求ID: {request_id}")
    logger.info(f"[智能分析] 参数: 类型={request.analysis_type}, 时间范围={request.time_filter}")
    try:
        window = resolve_time_window(request.time_filter, request.year, request.quarter)
        result = service.analyze(request.analysis_type, window, request.with_ai_insights)
        _done("智能分析", request_id, start_time, f"交易数: {result['total_transactions']}")
        return {"success": True, "message": "分析完成", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("智能分析", request_id, start_time, e)


@app.get("/monitor/risk", response_model=ApiResponse, tags=["智能分析"])
async def risk_monitor(
        with_ai: bool = Query(True, description="是否生成AI建议"),
        service: RiskMonitorService = Depends(get_risk_monitor_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[风控监控] 开始 | 请求ID: {request_id}")
    try:
        result = service.scan(with_ai_recommendations=with_ai)
        _done("风控监控", request_id, start_time,
              f"风险评分: {result['risk_score']} | 异常数: {result['statistics']['anomalies_count']}")
        return {"success": True, "message": "监控完成", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("风控监控", request_id, start_time, e)


# 开销分类接口
@app.get("/expense-categories", response_model=ApiResponse, tags=["开销记账"])
async def list_expense_categories(service: ExpenseService = Depends(get_expense_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        return {"success": True, "message": "获取成功", "data": service.list_categories(), "request_id": request_id}
    except Exception as e:
        raise _failed("开销分类", request_id, start_time, e)


@app.post("/expense-categories", response_model=ApiResponse, tags=["开销记账"])
async def create_expense_category(
        request: ExpenseCategoryCreate,
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.create_category(request.model_dump(exclude_none=True))
        _done("新增开销分类", request_id, start_time, f"名称: {result['name']}")
        return {"success": True, "message": "分类创建成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("新增开销分类", request_id, start_time, e)


@app.put("/expense-categories/{category_id}", response_model=ApiResponse, tags=["开销记账"])
async def update_expense_category(
        category_id: int,
        request: ExpenseCategoryUpdate,
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.update_category(category_id, request.model_dump(exclude_unset=True))
        return {"success": True, "message": "分类更新成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("更新开销分类", request_id, start_time, e)


@app.delete("/expense-categories/{category_id}", response_model=ApiResponse, tags=["开销记账"])
async def delete_expense_category(category_id: int, service: ExpenseService = Depends(get_expense_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        service.delete_category(category_id)
        return {"success": True, "message": "分类已删除", "data": {"id": category_id}, "request_id": request_id}
    except Exception as e:
        raise _failed("删除开销分类", request_id, start_time, e)


# 开销接口
@app.get("/expenses", response_model=ApiResponse, tags=["开销记账"])
async def list_expenses(
        category: Optional[str] = Query(None, description="分类名称"),
        start_date: Optional[date] = Query(None, description="开始日期"),
        end_date: Optional[date] = Query(None, description="结束日期"),
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.list_expenses(category, start_date, end_date)
        _done("开销列表", request_id, start_time, f"数据条数: {len(result)}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("开销列表", request_id, start_time, e)


@app.post("/expenses", response_model=ApiResponse, tags=["开销记账"])
async def create_expense(request: ExpenseCreate, service: ExpenseService = Depends(get_expense_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[记录开销] 开始 | 请求ID: {request_id}")
    logger.info(f"[记录开销] 参数: 标题={request.title}, 金额={request.amount} {request.currency}, 数量={request.quantity}")
    try:
        result = service.create_expense(request.model_dump(exclude_none=True))
        _done("记录开销", request_id, start_time, f"USDT: {result['usdt_amount']}")
        return {"success": True, "message": "开销记录成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("记录开销", request_id, start_time, e)


@app.post("/expenses/exchange-rate", response_model=ApiResponse, tags=["开销记账"])
async def get_expense_exchange_rate(
        request: ExpenseRateRequest,
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.get_exchange_rate(request.currency)
        _done("开销汇率", request_id, start_time, f"{result['currency']}: {result['rate']} | 备用: {result['fallback']}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("开销汇率", request_id, start_time, e)


@app.get("/expenses/dashboard", response_model=ExpenseDashboardResponse, tags=["开销记账"])
async def get_expense_dashboard(
        time_filter: str = Query("month", description="时间范围 month/year/all"),
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.dashboard(time_filter)
        _done("开销看板", request_id, start_time, f"总开销: {result['total_expense']}")
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("开销看板", request_id, start_time, e)


@app.get("/expenses/reports", response_model=ApiResponse, tags=["开销记账"])
async def get_expense_reports(
        months: int = Query(6, ge=1, le=24, description="月度趋势的月份数"),
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.reports(months)
        return {"success": True, "message": "获取成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("开销报表", request_id, start_time, e)


@app.get("/expenses/{expense_id}", response_model=ApiResponse, tags=["开销记账"])
async def get_expense(expense_id: int, service: ExpenseService = Depends(get_expense_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        return {"success": True, "message": "获取成功", "data": service.get_expense(expense_id),
                "request_id": request_id}
    except Exception as e:
        raise _failed("开销详情", request_id, start_time, e)


@app.put("/expenses/{expense_id}", response_model=ApiResponse, tags=["开销记账"])
async def update_expense(
        expense_id: int,
        request: ExpenseUpdate,
        service: ExpenseService = Depends(get_expense_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        result = service.update_expense(expense_id, request.model_dump(exclude_unset=True))
        return {"success": True, "message": "开销更新成功", "data": result, "request_id": request_id}
    except Exception as e:
        raise _failed("更新开销", request_id, start_time, e)


@app.delete("/expenses/{expense_id}", response_model=ApiResponse, tags=["开销记账"])
async def delete_expense(expense_id: int, service: ExpenseService = Depends(get_expense_service)):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    try:
        service.delete_expense(expense_id)
        return {"success": True, "message": "开销已删除", "data": {"id": expense_id}, "request_id": request_id}
    except Exception as e:
        raise _failed("删除开销", request_id, start_time, e)
