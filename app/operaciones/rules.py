"""Payment and status rules for operations.

These functions keep ``monto_pagado``, ``estado`` and ``fecha_completado``
consistent with ``monto_total``. They mutate the given ``Operacion`` in place
and return it; when a rule rejects the change nothing is mutated. None of
them touch the session: persisting is the caller's job.

Money is always handled as ``Decimal`` quantised to cents.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from app.core.errors import ExceedsTotalError, OverpaymentError, ValidationError
from app.core.models import EstadoOperacion, Operacion
from app.core.utils import CENT, ZERO, money


def derive_estado(monto_pagado: Decimal, monto_total: Decimal) -> EstadoOperacion:
    if monto_pagado == 0:
        return EstadoOperacion.PENDIENTE
    if monto_pagado < monto_total:
        return EstadoOperacion.EN_PROCESO
    return EstadoOperacion.COMPLETADO


def coerce_fee(value) -> tuple[Decimal, bool]:
    """Return ``(amount, valid)`` for a recurring fee read from a client.

    Missing, non-numeric, non-finite or negative values become ``0.00``.
    Anything that is not a positive amount is reported as invalid, since a
    recurring client must always carry a fee.
    """
    if value is None:
        return ZERO, False
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return ZERO, False
    if not amount.is_finite() or amount < 0:
        return ZERO, False
    amount = amount.quantize(CENT)
    return amount, amount > 0


def _amount(value, message: str) -> Decimal:
    try:
        return money(value)
    except ValueError as exc:
        raise ValidationError(message) from exc


def _totals(operacion: Operacion) -> tuple[Decimal, Decimal]:
    return money(operacion.monto_total), money(operacion.monto_pagado)


def _complete(operacion: Operacion, hoy: date | None) -> None:
    operacion.estado = EstadoOperacion.COMPLETADO
    if operacion.fecha_completado is None:
        operacion.fecha_completado = hoy or date.today()


def apply_payment(operacion: Operacion, monto_pago, hoy: date | None = None) -> Operacion:
    pago = _amount(monto_pago, "El monto del pago debe ser un numero valido")
    if pago <= 0:
        raise ValidationError("El monto del pago debe ser mayor a 0")

    total, pagado = _totals(operacion)
    nuevo_pagado = pagado + pago
    if nuevo_pagado > total:
        raise OverpaymentError(total - pagado)

    operacion.monto_pagado = nuevo_pagado
    if nuevo_pagado >= total:
        _complete(operacion, hoy)
    elif operacion.estado == EstadoOperacion.PENDIENTE:
        operacion.estado = EstadoOperacion.EN_PROCESO
    return operacion


def recompute_state_from_paid_amount(
    operacion: Operacion,
    nuevo_monto_pagado,
    nuevo_monto_total=None,
    hoy: date | None = None,
) -> Operacion:
    """Set the paid amount directly (edit path) and derive the status from it.

    Unlike :func:`apply_payment` this can move a completed operation back to
    ``EN_PROCESO`` or ``PENDIENTE``; the completion date is cleared then.
    """
    pagado = _amount(nuevo_monto_pagado, "El monto pagado debe ser un numero valido")
    if pagado < 0:
        raise ValidationError("El monto pagado no puede ser negativo")
    total = (
        _amount(nuevo_monto_total, "El monto total debe ser un numero valido")
        if nuevo_monto_total is not None
        else money(operacion.monto_total)
    )
    if total < 0:
        raise ValidationError("El monto total no puede ser negativo")
    if pagado > total:
        raise ExceedsTotalError(total)

    if nuevo_monto_total is not None:
        operacion.honorarios = total
    operacion.monto_pagado = pagado

    estado = derive_estado(pagado, total)
    if estado == EstadoOperacion.COMPLETADO:
        _complete(operacion, hoy)
    else:
        operacion.estado = estado
        operacion.fecha_completado = None
    return operacion


def mark_completed(operacion: Operacion, hoy: date | None = None) -> Operacion:
    operacion.monto_pagado = money(operacion.monto_total)
    _complete(operacion, hoy)
    return operacion
