from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from app.core.utils import iso, money_str


class LedgerError(ValueError):
    """Error the caller can correct; rendered with its message to the user."""

    kind = "bad_request"
    status_code = 400

    def details(self) -> dict[str, object]:
        return {}


class ValidationError(LedgerError):
    kind = "validation"


class NotFoundError(LedgerError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} no encontrado")
        self.entity = entity


class ConflictError(LedgerError):
    kind = "conflict"
    status_code = 409


class OverpaymentError(LedgerError):
    kind = "overpayment"

    def __init__(self, restante: Decimal) -> None:
        super().__init__(f"El pago excede el monto total. Monto restante: {money_str(restante)}")
        self.restante = restante

    def details(self) -> dict[str, object]:
        return {"restante": money_str(self.restante)}


class ExceedsTotalError(LedgerError):
    kind = "exceeds_total"

    def __init__(self, monto_total: Decimal) -> None:
        super().__init__(
            f"El monto pagado no puede exceder el monto total. Monto total: {money_str(monto_total)}"
        )
        self.monto_total = monto_total

    def details(self) -> dict[str, object]:
        return {"montoTotal": money_str(self.monto_total)}


class AlreadyGeneratedError(LedgerError):
    kind = "already_generated"
    status_code = 409

    def __init__(self, existentes: int, fecha: date) -> None:
        super().__init__(
            f"Ya existen {existentes} mensualidades generadas para "
            f"{fecha.day}/{fecha.month}/{fecha.year}"
        )
        self.existentes = existentes
        self.fecha = fecha

    def details(self) -> dict[str, object]:
        return {"existentes": self.existentes, "fecha": iso(self.fecha)}


class PersistenceError(RuntimeError):
    """Store failure wrapped with the operation and its scope."""

    kind = "persistence"
    status_code = 500

    def __init__(self, operation: str, context: dict[str, object], cause: Exception | None = None) -> None:
        scope = ", ".join(f"{key}={value}" for key, value in context.items())
        super().__init__(f"Error de persistencia en {operation} ({scope}): {cause}")
        self.operation = operation
        self.context = context


@dataclass
class DataQualityWarning:
    cliente_id: int
    cliente_nombre: str
    valor: object
    mensaje: str

    def to_dict(self) -> dict[str, object]:
        return {
            "clienteId": self.cliente_id,
            "clienteNombre": self.cliente_nombre,
            "valor": None if self.valor is None else str(self.valor),
            "mensaje": self.mensaje,
        }
