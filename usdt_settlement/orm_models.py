from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL, Date, DateTime, Text
from .database import Base


class _SerializableMixin:
    def to_dict(self) -> dict:
        """转换为普通字典，Decimal转为float"""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, Decimal):
                value = float(value)
            result[column.name] = value
        return result


class Transaction(_SerializableMixin, Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    transaction_number = Column(String(32), index=True)  # YYYYMMDD/0001

    customer_name = Column(String(255))
    customer_age = Column(String(32))
    customer_nationality = Column(String(64))
    receiving_account_name = Column(String(255))  # 入款公司
    receiving_account_number = Column(String(128))
    bank_name = Column(String(255))
    bank_account = Column(String(128))
    bank_address = Column(String(255))
    bank_location = Column(String(128))

    currency = Column(String(32))  # EUR欧元
    deposit_amount = Column(DECIMAL(20, 2), default=0)
    remittance_count = Column(Integer, default=1)
    deposit_date = Column(Date)
    maintenance_days = Column(Integer, default=15)
    maintenance_end_date = Column(Date)

    exchange_rate = Column(DECIMAL(20, 8), default=0)
    commission_percentage = Column(DECIMAL(10, 4), default=0)
    calculation_mode = Column(String(16), default="进算")  # 进算 / 拖算
    transfer_fee = Column(DECIMAL(20, 2), default=0)
    violation_penalty = Column(DECIMAL(20, 2), default=0)

    fund_status = Column(String(32), index=True, default="等待中")
    settlement_usdt = Column(DECIMAL(20, 2), default=0)
    acceptance_usdt = Column(DECIMAL(20, 2), default=0)

    created_date = Column(DateTime, default=datetime.now, index=True)
    updated_date = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class ExpenseCategory(_SerializableMixin, Base):
    __tablename__ = "expense_categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False)
    icon = Column(String(16), default="💰")
    color = Column(String(16), default="#3b82f6")
    budget_limit = Column(DECIMAL(20, 2), default=0)
    created_date = Column(DateTime, default=datetime.now)


class Expense(_SerializableMixin, Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    quantity = Column(Integer, default=1)
    amount = Column(DECIMAL(20, 2), default=0)
    currency = Column(String(32), default="USD美元")
    exchange_rate = Column(DECIMAL(20, 8), default=1)  # 每1单位原币对应的USDT
    usdt_amount = Column(DECIMAL(20, 2), default=0)
    category = Column(String(64), index=True)
    expense_date = Column(Date, default=date.today, index=True)
    payment_method = Column(String(16), default="现金")
    description = Column(Text)
    created_date = Column(DateTime, default=datetime.now)
