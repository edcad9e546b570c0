import pytest
from datetime import date
from unittest.mock import MagicMock

from usdt_settlement.services.expense_service import ExpenseService, calculate_expense_usdt
from usdt_settlement.utils import RecordNotFoundError


@pytest.fixture
def rate_service():
    service = MagicMock()
    service.get_expense_rate.return_value = {"currency": "EUR", "rate": 1.25, "fallback": False}
    return service


@pytest.fixture
def expense_service(db, rate_service):
    return ExpenseService(db, rate_service=rate_service)


class TestExpenseService:

    def test_usdt_amount_formula(self):
        assert calculate_expense_usdt(100, 1.25, 2) == 252.5
        assert calculate_expense_usdt(10, 1, None) == 10.1

    def test_create_fetches_rate(self, expense_service, rate_service):
        result = expense_service.create_expense({
            "title": "办公用品", "amount": 100, "quantity": 2, "currency": "EUR欧元", "category": "办公",
        })

        rate_service.get_expense_rate.assert_called_once_with("EUR欧元")
        assert result["exchange_rate"] == 1.25
        assert result["usdt_amount"] == 252.5
        assert result["payment_method"] == "现金"
        assert result["expense_date"] == date.today()

    def test_create_with_given_rate_and_amount(self, expense_service, rate_service):
        with_rate = expense_service.create_expense({"title": "打车", "amount": 10, "exchange_rate": 0.5,
                                                    "currency": "MYR马币"})
        with_usdt = expense_service.create_expense({"title": "午餐", "amount": 10, "exchange_rate": 1,
                                                    "usdt_amount": 9.99})

        rate_service.get_expense_rate.assert_not_called()
        assert with_rate["usdt_amount"] == 5.05
        assert with_usdt["usdt_amount"] == 9.99

    def test_update_recalculates(self, expense_service, rate_service):
        created = expense_service.create_expense({"title": "咖啡", "amount": 10, "exchange_rate": 1})

        updated = expense_service.update_expense(created["id"], {"quantity": 3})
        assert updated["usdt_amount"] == 30.3
        rate_service.get_expense_rate.assert_not_called()

        switched = expense_service.update_expense(created["id"], {"currency": "EUR欧元"})
        rate_service.get_expense_rate.assert_called_once_with("EUR欧元")
        assert switched["usdt_amount"] == 37.88

        renamed = expense_service.update_expense(created["id"], {"title": "拿铁"})
        assert renamed["usdt_amount"] == 37.88

    def test_missing_expense(self, expense_service):
        with pytest.raises(RecordNotFoundError):
            expense_service.get_expense(1)
        with pytest.raises(RecordNotFoundError):
            expense_service.delete_expense(1)

    def test_categories(self, expense_service):
        category = expense_service.create_category({"name": "餐饮", "budget_limit": 100})

        assert category["icon"] == "💰"
        assert category["color"] == "#3b82f6"
        with pytest.raises(ValueError):
            expense_service.create_category({"name": "餐饮"})

        expense_service.create_expense({"title": "午餐", "amount": 10, "exchange_rate": 1, "category": "餐饮"})
        expense_service.update_category(category["id"], {"name": "伙食"})

        assert expense_service.list_expenses(category="伙食")[0]["title"] == "午餐"
        expense_service.delete_category(category["id"])
        assert expense_service.list_categories() == []

    def test_dashboard(self, expense_service):
        expense_service.create_category({"name": "餐饮", "budget_limit": 100})
        for title, day, amount, category in [
            ("晚餐", date(2025, 3, 10), 150, "餐饮"),
            ("地铁", date(2025, 3, 15), 50, "交通"),
            ("聚餐", date(2025, 2, 20), 100, "餐饮"),
        ]:
            expense_service.create_expense({"title": title, "amount": amount, "exchange_rate": 1,
                                            "usdt_amount": amount, "expense_date": day, "category": category})

        result = expense_service.dashboard("month", today=date(2025, 3, 15))

        assert result["total_expense"] == 200.0
        assert result["expense_count"] == 2
        assert result["today_total"] == 50.0
        assert result["change_percent"] == 100.0
        by_name = {c["name"]: c for c in result["categories"]}
        assert by_name["餐饮"]["usage_percent"] == 150.0
        assert by_name["餐饮"]["over_budget"] is True
        assert by_name["交通"]["usage_percent"] is None

        all_time = expense_service.dashboard("all", today=date(2025, 3, 15))
        assert all_time["total_expense"] == 300.0

        with pytest.raises(ValueError):
            expense_service.dashboard("week")

    def test_dashboard_previous_month_crosses_year(self, expense_service):
        expense_service.create_expense({"title": "年货", "amount": 40, "exchange_rate": 1, "usdt_amount": 40,
                                        "expense_date": date(2024, 12, 20)})
        expense_service.create_expense({"title": "去年同月", "amount": 99, "exchange_rate": 1, "usdt_amount": 99,
                                        "expense_date": date(2023, 12, 20)})
        expense_service.create_expense({"title": "元旦", "amount": 60, "exchange_rate": 1, "usdt_amount": 60,
                                        "expense_date": date(2025, 1, 1)})

        result = expense_service.dashboard("month", today=date(2025, 1, 10))

        assert result["change_percent"] == 50.0

    def test_reports(self, expense_service):
        for day, amount, category in [
            (date(2025, 1, 5), 30, "交通"),
            (date(2025, 2, 5), 70, "餐饮"),
            (date(2025, 2, 6), 100, "餐饮"),
        ]:
            expense_service.create_expense({"title": "x", "amount": amount, "exchange_rate": 1,
                                            "usdt_amount": amount, "expense_date": day, "category": category})

        result = expense_service.reports(months=6)

        assert result["monthly"] == [
            {"month": "2025-01", "amount": 30.0, "count": 1},
            {"month": "2025-02", "amount": 170.0, "count": 2},
        ]
        assert result["category_ranking"][0]["category"] == "餐饮"
        assert result["category_ranking"][0]["percentage"] == 85.0
        assert result["total"] == 200.0
        assert expense_service.reports(months=1)["monthly"] == [{"month": "2025-02", "amount": 170.0, "count": 2}]
