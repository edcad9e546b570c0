import logging
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from ..config import settings
from ..utils import currency_code

logger = logging.getLogger(__name__)


class ExchangeRateService:
    """汇率服务类，基于 open.er-api.com 的美元基准汇率"""

    # 开销支持的币种及接口失败时的备用汇率（每1单位原币对应的USDT）
    EXPENSE_FALLBACK_RATES = {"EUR": 1.1, "USD": 1.0, "MYR": 0.22}

    def __init__(self, api_url: Optional[str] = None, timeout: Optional[int] = None):
        self.api_url = api_url or settings.EXCHANGE_RATE_API_URL
        self.timeout = timeout or settings.EXCHANGE_RATE_TIMEOUT
        self.logger = logging.getLogger(__name__)

    def _fetch_rates(self) -> Dict[str, float]:
        """获取以USD为基准的汇率表（每1 USD对应的各币种数量）"""
        try:
            response = requests.get(self.api_url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise RuntimeError(f"汇率接口请求失败: {str(e)}")

        if not data or data.get("result") != "success":
            raise RuntimeError("汇率接口返回失败")
        return data.get("rates") or {}

    def get_deposit_rate(self, currency: str) -> Dict[str, Any]:
        """
        入金汇率：市场汇率扣除3%，即每1 USDT可兑换的原币数。

        :param currency: 币种代码或名称，如 EUR / EUR欧元
        """
        code = currency_code(currency)
        if not code:
            raise ValueError("币种参数缺失")
        if code == "USD":
            return {"currency": code, "market_rate": 1.0, "rate": 1.0}

        rates = self._fetch_rates()
        market_rate = rates.get(code)
        if not market_rate:
            raise ValueError(f"不支持的币种：{code}")

        rate = float(market_rate) * (1 - settings.DEPOSIT_RATE_DEDUCTION)
        self.logger.info(f"入金汇率: {code} 市场汇率={market_rate}, 扣除后={rate}")
        return {"currency": code, "market_rate": float(market_rate), "rate": rate}

    def get_expense_rate(self, currency: str) -> Dict[str, Any]:
        """开销汇率：每1单位原币对应的USDT，接口失败时使用备用汇率"""
        code = currency_code(currency)
        if code not in self.EXPENSE_FALLBACK_RATES:
            raise ValueError(f"不支持的币种：{currency}，仅支持 EUR欧元/MYR马币/USD美元")

        timestamp = datetime.now().isoformat()
        if code == "USD":
            return {"currency": code, "rate": 1.0, "fallback": False, "timestamp": timestamp}

        try:
            rates = self._fetch_rates()
        except RuntimeError as e:
            self.logger.warning(f"获取开销汇率失败，使用备用汇率: {code}, 错误: {e}")
            return {"currency": code, "rate": self.EXPENSE_FALLBACK_RATES[code], "fallback": True,
                    "timestamp": timestamp}

        market_rate = rates.get(code)
        if not market_rate:
            self.logger.warning(f"汇率表缺少 {code}，使用备用汇率")
            return {"currency": code, "rate": self.EXPENSE_FALLBACK_RATES[code], "fallback": True,
                    "timestamp": timestamp}
        return {"currency": code, "rate": 1 / float(market_rate), "fallback": False, "timestamp": timestamp}
