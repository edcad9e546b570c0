import pytest
import sys
import os
from datetime import datetime

# 将项目根目录添加到sys.path，以便导入usdt_settlement模块
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))

# 测试使用内存SQLite，且不调用真实AI接口
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_API_KEY"] = ""

from usdt_settlement.database import Base, SessionLocal, engine, get_db
from usdt_settlement import orm_models  # noqa: F401


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_transaction():
    """构造交易字典，默认值即示例A：1000 / 汇率1.0 / 10% / 手续费25 / 已完成 / 承兑950"""
    def _make(**overrides):
        transaction = {
            "id": 1,
            "transaction_number": "20250301/0001",
            "customer_name": "张三",
            "currency": "EUR欧元",
            "deposit_amount": 1000,
            "exchange_rate": 1.0,
            "commission_percentage": 10,
            "transfer_fee": 25,
            "violation_penalty": 0,
            "fund_status": "已完成交易",
            "acceptance_usdt": 950,
            "created_date": datetime(2025, 3, 1, 10, 0, 0),
        }
        transaction.update(overrides)
        return transaction
    return _make


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from usdt_settlement.main import app, get_ai_service

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ai_service] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
