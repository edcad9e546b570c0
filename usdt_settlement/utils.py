# usdt_settlement/utils.py
import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Tuple

_NON_CODE_CHARS = re.compile(r"[^A-Za-z0-9]")
_QUARTER_PATTERN = re.compile(r"^Q([1-4])$")

TIME_FILTERS = ("today", "month", "quarter", "year", "all")
REPORT_PERIODS = ("month", "quarter", "year")


class RecordNotFoundError(LookupError):
    """按ID查询的记录不存在"""


def parse_datetime(value: Any) -> Optional[datetime]:
    """把数据库/接口传来的日期统一转换为naive datetime，无法解析时返回None"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    # 带时区的时间转换为UTC后去掉时区，便于与时间窗口比较
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def parse_date(value: Any) -> Optional[date]:
    moment = parse_datetime(value)
    return moment.date() if moment else None


def round_amount(value: Any) -> float:
    """金额保留两位小数（四舍五入）"""
    return float(Decimal(str(value)).quantize(Decimal("0.00"), rounding=ROUND_HALF_UP))


def currency_code(currency: Optional[str]) -> str:
    """从 'EUR欧元' 这类币种名称中提取三位代码"""
    if not currency:
        return ""
    return _NON_CODE_CHARS.sub("", currency)[:3].upper()


@dataclass(frozen=True)
class TimeWindow:
    """闭区间时间窗口，用于筛选进入统计的交易"""
    start: datetime
    end: datetime
    label: str = ""

    def contains(self, value: Any) -> bool:
        moment = parse_datetime(value)
        return moment is not None and self.start <= moment <= self.end


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def quarter_bounds(year: int, quarter: int) -> Tuple[datetime, datetime]:
    first_month = (quarter - 1) * 3 + 1
    last_month = first_month + 2
    last_day = calendar.monthrange(year, last_month)[1]
    return datetime(year, first_month, 1), _end_of_day(date(year, last_month, last_day))


def parse_quarter(quarter: Any) -> int:
    if isinstance(quarter, int) and 1 <= quarter <= 4:
        return quarter
    match = _QUARTER_PATTERN.match(str(quarter).strip().upper())
    if not match:
        raise ValueError(f"无效的季度：{quarter}，仅支持 Q1-Q4")
    return int(match.group(1))


def resolve_time_window(time_filter: str = "all", year: Optional[int] = None,
                        quarter: Optional[str] = None, now: Optional[datetime] = None) -> Optional[TimeWindow]:
    """
    根据时间筛选条件生成时间窗口。

    - today: 今日
    - month: 本月
    - quarter: 指定年份的某季度（默认当前年份/季度）
    - year: 指定年份全年（默认当前年份）
    - all: 不限制，返回None
    """
    now = now or datetime.now()
    if time_filter == "all":
        return None
    if time_filter == "today":
        return TimeWindow(datetime.combine(now.date(), time.min), _end_of_day(now.date()), "今日")
    if time_filter == "month":
        last_day = calendar.monthrange(now.year, now.month)[1]
        return TimeWindow(datetime(now.year, now.month, 1),
                          _end_of_day(date(now.year, now.month, last_day)), "本月")
    if time_filter == "quarter":
        target_year = int(year) if year else now.year
        target_quarter = parse_quarter(quarter) if quarter else (now.month - 1) // 3 + 1
        start, end = quarter_bounds(target_year, target_quarter)
        return TimeWindow(start, end, f"{target_year}年第{target_quarter}季度")
    if time_filter == "year":
        target_year = int(year) if year else now.year
        return TimeWindow(datetime(target_year, 1, 1), _end_of_day(date(target_year, 12, 31)),
                          f"{target_year}年全年")
    raise ValueError(f"不支持的时间范围：{time_filter}，仅支持 {'/'.join(TIME_FILTERS)}")


def time_window_label(window: Optional[TimeWindow]) -> str:
    return window.label if window else "累计"


def period_key(moment: datetime, period: str) -> Tuple[str, str]:
    """返回 (排序键, 展示名称)"""
    if period == "month":
        return moment.strftime("%Y-%m"), moment.strftime("%Y年%m月")
    if period == "quarter":
        quarter = (moment.month - 1) // 3 + 1
        return f"{moment.year}-Q{quarter}", f"{moment.year}年第{quarter}季度"
    if period == "year":
        return str(moment.year), f"{moment.year}年"
    raise ValueError(f"不支持的报表类型：{period}，仅支持 {'/'.join(REPORT_PERIODS)}")


def previous_month(day: date) -> Tuple[int, int]:
    first = day.replace(day=1) - timedelta(days=1)
    return first.year, first.month
