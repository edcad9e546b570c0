import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..orm_models import Transaction
from ..profit_calculator import ALL_FUND_STATUSES, FundStatus, normalize_transaction, to_decimal
from ..utils import RecordNotFoundError, TimeWindow, currency_code, parse_date, round_amount

logger = logging.getLogger(__name__)

# 客户端不能直接写入的字段
_READONLY_FIELDS = {"id", "created_date", "updated_date"}


class TransactionService:
    """入金交易服务类，负责交易的增删改查、编号生成和状态修正"""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(__name__)
        self._columns = {column.name for column in Transaction.__table__.columns}

    def _get_model(self, transaction_id: int) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is None:
            raise RecordNotFoundError(f"交易不存在: {transaction_id}")
        return transaction

    def _prepare(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """校验状态、执行状态修正并计算维护期到期日"""
        status = record.get("fund_status")
        if status not in ALL_FUND_STATUSES:
            raise ValueError(f"无效的资金状态：{status}")

        prepared = normalize_transaction(record)

        deposit_date = parse_date(prepared.get("deposit_date"))
        prepared["deposit_date"] = deposit_date
        if deposit_date is not None:
            maintenance_days = int(prepared.get("maintenance_days") or 0)
            prepared["maintenance_end_date"] = deposit_date + timedelta(days=maintenance_days)
        else:
            prepared["maintenance_end_date"] = None
        return prepared

    def _apply(self, transaction: Transaction, record: Dict[str, Any]) -> None:
        for field, value in record.items():
            if field in self._columns and field not in _READONLY_FIELDS:
                setattr(transaction, field, value)

    def list_transactions(self, fund_status: Optional[str] = None,
                          window: Optional[TimeWindow] = None) -> List[Dict[str, Any]]:
        """交易列表（新的在前），可按资金状态和创建时间筛选"""
        query = self.db.query(Transaction)
        if fund_status:
            if fund_status not in ALL_FUND_STATUSES:
                raise ValueError(f"无效的资金状态：{fund_status}")
            query = query.filter(Transaction.fund_status == fund_status)
        if window is not None:
            query = query.filter(Transaction.created_date >= window.start,
                                 Transaction.created_date <= window.end)
        rows = query.order_by(Transaction.created_date.desc(), Transaction.id.desc()).all()
        return [row.to_dict() for row in rows]

    def get(self, transaction_id: int) -> Dict[str, Any]:
        return self._get_model(transaction_id).to_dict()

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = {
            "commission_percentage": settings.DEFAULT_COMMISSION_PERCENTAGE,
            "transfer_fee": settings.DEFAULT_TRANSFER_FEE,
            "maintenance_days": settings.DEFAULT_MAINTENANCE_DAYS,
            "fund_status": FundStatus.PENDING.value,
            "calculation_mode": "进算",
            "remittance_count": 1,
            "deposit_date": date.today(),
        }
        record.update({key: value for key, value in data.items() if value is not None})

        # 美元入金默认承兑回USDT = 入金 / 1.02
        if currency_code(record.get("currency")) == "USD" and not to_decimal(record.get("acceptance_usdt")):
            divisor = Decimal(str(settings.USD_ACCEPTANCE_DIVISOR))
            record["acceptance_usdt"] = round_amount(to_decimal(record.get("deposit_amount")) / divisor)

        if not record.get("transaction_number"):
            deposit_date = parse_date(record.get("deposit_date")) or date.today()
            record["transaction_number"] = self.generate_transaction_number(deposit_date)["transaction_number"]

        prepared = self._prepare(record)
        transaction = Transaction()
        self._apply(transaction, prepared)
        try:
            self.db.add(transaction)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            self.logger.error(f"创建交易失败: {e}")
            raise
        self.db.refresh(transaction)
        self.logger.info(f"创建交易成功: ID={transaction.id}, 编号={transaction.transaction_number}, "
                         f"状态={transaction.fund_status}, 结算USDT={transaction.settlement_usdt}")
        return transaction.to_dict()

    def update(self, transaction_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        transaction = self._get_model(transaction_id)
        record = transaction.to_dict()
        record.update({key: value for key, value in data.items() if key not in _READONLY_FIELDS})

        prepared = self._prepare(record)
        self._apply(transaction, prepared)
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            self.logger.error(f"更新交易失败: ID={transaction_id}, 错误: {e}")
            raise
        self.db.refresh(transaction)
        self.logger.info(f"更新交易成功: ID={transaction_id}, 状态={transaction.fund_status}")
        return transaction.to_dict()

    def delete(self, transaction_id: int) -> None:
        transaction = self._get_model(transaction_id)
        self.db.delete(transaction)
        self.db.commit()
        self.logger.info(f"删除交易: ID={transaction_id}")

    def delete_all(self) -> int:
        deleted = self.db.query(Transaction).delete()
        self.db.commit()
        self.logger.warning(f"已删除全部交易，共 {deleted} 条")
        return deleted

    def generate_transaction_number(self, trade_date: Optional[date] = None) -> Dict[str, Any]:
        """生成 YYYYMMDD/0001 格式的交易编号，序号为当天已用最大序号 + 1"""
        trade_date = trade_date or date.today()
        prefix = trade_date.strftime("%Y%m%d")

        numbers = self.db.query(Transaction.transaction_number).filter(
            Transaction.transaction_number.like(f"{prefix}/%")
        ).all()

        max_sequence = 0
        for (number,) in numbers:
            parts = number.split("/")
            if len(parts) == 2 and parts[1].isdigit():
                max_sequence = max(max_sequence, int(parts[1]))

        sequence = max_sequence + 1
        return {
            "transaction_number": f"{prefix}/{sequence:04d}",
            "date": trade_date.isoformat(),
            "sequence": sequence,
        }

    def recalculate_returned(self) -> Dict[str, Any]:
        """对所有已退回交易重新执行状态修正"""
        returned = self.db.query(Transaction).filter(
            Transaction.fund_status == FundStatus.RETURNED.value
        ).all()

        updates = []
        for transaction in returned:
            old_acceptance = float(to_decimal(transaction.acceptance_usdt))
            prepared = normalize_transaction(transaction.to_dict())
            for field in ("commission_percentage", "transfer_fee", "settlement_usdt", "acceptance_usdt"):
                setattr(transaction, field, prepared[field])
            updates.append({
                "id": transaction.id,
                "transaction_number": transaction.transaction_number,
                "customer_name": transaction.customer_name,
                "old_acceptance_usdt": old_acceptance,
                "new_acceptance_usdt": float(prepared["acceptance_usdt"]),
            })

        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            self.logger.error(f"重算已退回交易失败: {e}")
            raise

        self.logger.info(f"重算已退回交易完成: 共 {len(updates)} 条")
        return {
            "total_checked": len(returned),
            "total_updated": len(updates),
            "updates": updates,
        }
