from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal | float | int | str | None) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        amount = Decimal(str(value).strip().replace(",", "."))
        if amount.is_finite():
            return amount.quantize(CENT)
    except InvalidOperation as exc:
        raise ValueError(f"Importe invalido: {value}") from exc
    raise ValueError(f"Importe invalido: {value}")


def money_str(value: Decimal | float | int | None) -> str:
    return f"{money(value):.2f}"


def iso(value: date | None) -> str | None:
    return value.isoformat() if value else None
