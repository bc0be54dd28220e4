from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, Union

Number = Union[int, float, Decimal]


def to_native_units(amount: Number, rate: Number, decimals: int = 18) -> int:
    """Convert a PKR amount to the chain's smallest unit (e.g. wei)"""
    value = Decimal(str(amount)) * Decimal(str(rate)) * (Decimal(10) ** decimals)
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def from_native_units(value: int, rate: Number, decimals: int = 18) -> int:
    """Convert a native-unit value back to whole PKR"""
    rate = Decimal(str(rate))
    if rate <= 0:
        raise ValueError("Exchange rate must be positive")
    pkr = Decimal(value) / (Decimal(10) ** decimals) / rate
    return int(pkr.to_integral_value(rounding=ROUND_FLOOR))


def date_to_unix(value: Optional[date], default: Optional[int] = None) -> int:
    """Unix seconds at UTC midnight of ``value``; ``default`` when missing"""
    if value is None:
        if default is None:
            raise ValueError("No date and no default given")
        return default
    return int(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())


def now_unix() -> int:
    return int(datetime.now(timezone.utc).timestamp())
