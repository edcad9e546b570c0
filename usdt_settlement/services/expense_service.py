import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from ..config import settings
from ..orm_models import Expense, ExpenseCategory
from ..profit_calculator import to_decimal
from ..utils import RecordNotFoundError, parse_date, previous_month, round_amount
from .exchange_rate_service import ExchangeRateService

logger = logging.getLogger(__name__)

EXPENSE_TIME_FILTERS = ("month", "year", "all")
# 影响USDT金额的字段
_AMOUNT_FIELDS = {"amount", "quantity", "currency", "exchange_rate"}
_EXPENSE_COLUMNS = {column.name for column in Expense.__table__.columns}


def calculate_expense_usdt(amount: Any, exchange_rate: Any, quantity: Any) -> float:
    """USDT金额 = 单价 × 汇率 × 数量 × (1 + 上浮比例)"""
    markup = Decimal("1") + Decimal(str(settings.EXPENSE_USDT_MARKUP))
    count = to_decimal(quantity) or Decimal("1")
    return round_amount(to_decimal(amount) * to_decimal(exchange_rate) * count * markup)


def _in_expense_window(expense_date: Optional[date], time_filter: str, today: date) -> bool:
    if time_filter == "all":
        return True
    if expense_date is None:
        return False
    if time_filter == "month":
        return (expense_date.year, expense_date.month) == (today.year, today.month)
    return expense_date.year == today.year


class ExpenseService:
    """开销记账服务类：分类、开销、看板与报表"""

    def __init__(self, db: Session, rate_service: Optional[ExchangeRateService] = None):
        self.db = db
        self.rate_service = rate_service or ExchangeRateService()
        self.logger = logging.getLogger(__name__)

    # ---------- 分类 ----------
    def list_categories(self) -> List[Dict[str, Any]]:
        rows = self.db.query(ExpenseCategory).order_by(ExpenseCategory.id).all()
        return [row.to_dict() for row in rows]

    def _get_category(self, category_id: int) -> ExpenseCategory:
        category = self.db.get(ExpenseCategory, category_id)
        if category is None:
            raise RecordNotFoundError(f"开销分类不存在: {category_id}")
        return category

    def create_category(self, data: Dict[str, Any]) -> Dict[str, Any]:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("分类名称不能为空")
        if self.db.query(ExpenseCategory).filter(ExpenseCategory.name == name).first():
            raise ValueError(f"分类已存在：{name}")

        category = ExpenseCategory(
            name=name,
            icon=data.get("icon") or "💰",
            color=data.get("color") or "#3b82f6",
            budget_limit=data.get("budget_limit") or 0,
        )
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        self.logger.info(f"创建开销分类: {name}")
        return category.to_dict()

    def update_category(self, category_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        category = self._get_category(category_id)
        new_name = data.get("name")
        if new_name and new_name != category.name:
            if self.db.query(ExpenseCategory).filter(ExpenseCategory.name == new_name).first():
                raise ValueError(f"分类已存在：{new_name}")
            # 同步已有开销的分类名称
            self.db.query(Expense).filter(Expense.category == category.name).update(
                {Expense.category: new_name}, synchronize_session=False
            )
        for field in ("name", "icon", "color", "budget_limit"):
            if data.get(field) is not None:
                setattr(category, field, data[field])
        self.db.commit()
        self.db.refresh(category)
        return category.to_dict()

    def delete_category(self, category_id: int) -> None:
        category = self._get_category(category_id)
        self.db.delete(category)
        self.db.commit()
        self.logger.info(f"删除开销分类: {category.name}")

    # ---------- 开销 ----------
    def _get_expense(self, expense_id: int) -> Expense:
        expense = self.db.get(Expense, expense_id)
        if expense is None:
            raise RecordNotFoundError(f"开销记录不存在: {expense_id}")
        return expense

    def _resolve_amounts(self, record: Dict[str, Any], rate_supplied: bool, usdt_supplied: bool) -> None:
        if not rate_supplied:
            record["exchange_rate"] = self.rate_service.get_expense_rate(record["currency"])["rate"]
        if not usdt_supplied:
            record["usdt_amount"] = calculate_expense_usdt(
                record.get("amount"), record.get("exchange_rate"), record.get("quantity")
            )

    def list_expenses(self, category: Optional[str] = None, start_date: Optional[date] = None,
                      end_date: Optional[date] = None) -> List[Dict[str, Any]]:
        query = self.db.query(Expense)
        if category:
            query = query.filter(Expense.category == category)
        if start_date:
            query = query.filter(Expense.expense_date >= start_date)
        if end_date:
            query = query.filter(Expense.expense_date <= end_date)
        rows = query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
        return [row.to_dict() for row in rows]

    def get_expense(self, expense_id: int) -> Dict[str, Any]:
        return self._get_expense(expense_id).to_dict()

    def create_expense(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = {
            "quantity": 1,
            "currency": "USD美元",
            "payment_method": "现金",
            "expense_date": date.today(),
        }
        record.update({key: value for key, value in data.items() if value is not None})
        if not record.get("title"):
            raise ValueError("开销标题不能为空")

        self._resolve_amounts(record,
                              rate_supplied=data.get("exchange_rate") is not None,
                              usdt_supplied=data.get("usdt_amount") is not None)

        expense = Expense(**{key: value for key, value in record.items() if key in _EXPENSE_COLUMNS})
        self.db.add(expense)
        self.db.commit()
        self.db.refresh(expense)
        self.logger.info(f"记录开销: {expense.title}, 金额={expense.amount} {expense.currency}, "
                         f"USDT={expense.usdt_amount}")
        return expense.to_dict()

    def update_expense(self, expense_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        expense = self._get_expense(expense_id)
        record = expense.to_dict()
        changes = {key: value for key, value in data.items() if key not in ("id", "created_date")}
        record.update(changes)

        if _AMOUNT_FIELDS & changes.keys():
            # 币种变化且未指定汇率时重新获取汇率
            rate_supplied = "exchange_rate" in changes or "currency" not in changes
            self._resolve_amounts(record, rate_supplied=rate_supplied,
                                  usdt_supplied="usdt_amount" in changes)

        for field, value in record.items():
            if field in _EXPENSE_COLUMNS and field not in ("id", "created_date"):
                setattr(expense, field, value)
        self.db.commit()
        self.db.refresh(expense)
        return expense.to_dict()

    def delete_expense(self, expense_id: int) -> None:
        expense = self._get_expense(expense_id)
        self.db.delete(expense)
        self.db.commit()

    def get_exchange_rate(self, currency: str) -> Dict[str, Any]:
        return self.rate_service.get_expense_rate(currency)

    # ---------- 看板与报表 ----------
    def dashboard(self, time_filter: str = "month", today: Optional[date] = None) -> Dict[str, Any]:
        """
        开销看板。

        change_percent 为当前范围总开销相对上一个自然月开销的变化，上月无开销时为0。
        """
        if time_filter not in EXPENSE_TIME_FILTERS:
            raise ValueError(f"不支持的时间范围：{time_filter}，仅支持 {'/'.join(EXPENSE_TIME_FILTERS)}")
        today = today or date.today()

        expenses = self.list_expenses()
        for expense in expenses:
            expense["expense_date"] = parse_date(expense.get("expense_date"))

        scoped = [e for e in expenses if _in_expense_window(e["expense_date"], time_filter, today)]
        total = sum((to_decimal(e.get("usdt_amount")) for e in scoped), Decimal("0"))
        today_total = sum((to_decimal(e.get("usdt_amount")) for e in expenses if e["expense_date"] == today),
                          Decimal("0"))

        prev_month = previous_month(today)
        prev_total = sum((to_decimal(e.get("usdt_amount")) for e in expenses
                          if e["expense_date"] and (e["expense_date"].year, e["expense_date"].month) == prev_month),
                         Decimal("0"))
        change_percent = round(float((total - prev_total) / prev_total * 100), 1) if prev_total > 0 else 0.0

        categories = []
        budgets = {c["name"]: c for c in self.list_categories()}
        spent = {}
        for expense in scoped:
            name = expense.get("category") or "未分类"
            amount, count = spent.get(name, (Decimal("0"), 0))
            spent[name] = (amount + to_decimal(expense.get("usdt_amount")), count + 1)
        for name in list(budgets) + [n for n in spent if n not in budgets]:
            amount, count = spent.get(name, (Decimal("0"), 0))
            budget_limit = to_decimal((budgets.get(name) or {}).get("budget_limit"))
            usage = round(float(amount / budget_limit * 100), 1) if budget_limit > 0 else None
            categories.append({
                "name": name,
                "amount": round_amount(amount),
                "count": count,
                "budget_limit": float(budget_limit),
                "usage_percent": usage,
                "over_budget": budget_limit > 0 and amount > budget_limit,
            })
        categories.sort(key=lambda x: x["amount"], reverse=True)

        return {
            "total_expense": round_amount(total),
            "expense_count": len(scoped),
            "today_total": round_amount(today_total),
            "change_percent": change_percent,
            "categories": categories,
            "recent_expenses": [self._serialize(e) for e in expenses[:5]],
        }

    @staticmethod
    def _serialize(expense: Dict[str, Any]) -> Dict[str, Any]:
        item = dict(expense)
        if isinstance(item.get("expense_date"), date):
            item["expense_date"] = item["expense_date"].isoformat()
        return item

    def reports(self, months: int = 6) -> Dict[str, Any]:
        """月度开销趋势（最近有开销的N个月）及分类排行"""
        expenses = self.list_expenses()
        rows = []
        for expense in expenses:
            expense_date = parse_date(expense.get("expense_date"))
            if expense_date is None:
                continue
            rows.append({
                "month": expense_date.strftime("%Y-%m"),
                "category": expense.get("category") or "未分类",
                "usdt_amount": float(to_decimal(expense.get("usdt_amount"))),
            })
        if not rows:
            return {"monthly": [], "category_ranking": [], "total": 0.0}

        df = pd.DataFrame(rows)
        df_monthly = df.groupby("month", as_index=False).agg(
            amount=("usdt_amount", "sum"),
            count=("usdt_amount", "size"),
        ).sort_values("month").tail(months)
        monthly = [{"month": row["month"], "amount": round(float(row["amount"]), 2), "count": int(row["count"])}
                   for _, row in df_monthly.iterrows()]

        total = float(df["usdt_amount"].sum())
        df_category = df.groupby("category", as_index=False).agg(
            amount=("usdt_amount", "sum"),
            count=("usdt_amount", "size"),
        ).sort_values("amount", ascending=False)
        category_ranking = [{
            "category": row["category"],
            "amount": round(float(row["amount"]), 2),
            "count": int(row["count"]),
            "percentage": round(float(row["amount"]) / total * 100, 1) if total else 0.0,
        } for _, row in df_category.iterrows()]

        return {"monthly": monthly, "category_ranking": category_ranking, "total": round(total, 2)}
