from __future__ import annotations

from datetime import date

from sqlalchemy import func, or_

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.models import Cliente, Operacion
from app.core.transactions import unit_of_work
from app.core.utils import money

CLIENTE_FIELDS = ("nombre", "cuit", "contacto", "fecha_alta", "activo", "es_cliente_fijo", "monto_mensualidad")

PAYLOAD_ALIASES = {
    "fechaAlta": "fecha_alta",
    "esClienteFijo": "es_cliente_fijo",
    "montoMensualidad": "monto_mensualidad",
}


def _normalize(payload: dict) -> dict:
    return {PAYLOAD_ALIASES.get(key, key): value for key, value in payload.items()}


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "si", "on"}


def _parse_fecha_alta(value) -> date:
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError("Falta fecha de alta")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError("Formato de fecha invalido para fecha de alta") from exc


def _clean_values(values: dict) -> dict:
    cleaned: dict = {}
    for key in CLIENTE_FIELDS:
        if key not in values:
            continue
        value = values[key]
        if key in {"nombre", "cuit", "contacto"}:
            value = str(value or "").strip()
        elif key == "fecha_alta":
            value = _parse_fecha_alta(value)
        elif key in {"activo", "es_cliente_fijo"}:
            value = _parse_bool(value)
        elif key == "monto_mensualidad":
            try:
                value = None if value in (None, "") else money(value)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            if value is not None and value < 0:
                raise ValidationError("El monto de mensualidad no puede ser negativo")
        cleaned[key] = value
    return cleaned


def _validate_recurring_fee(es_cliente_fijo: bool, monto_mensualidad) -> None:
    if es_cliente_fijo and (monto_mensualidad is None or monto_mensualidad <= 0):
        raise ValidationError("Un cliente fijo debe tener un monto de mensualidad mayor a 0")


def _ensure_unique_cuit(cuit: str, exclude_id: int | None = None) -> None:
    query = Cliente.query.filter(Cliente.cuit == cuit)
    if exclude_id is not None:
        query = query.filter(Cliente.id != exclude_id)
    if query.first():
        raise ConflictError("Ya existe un cliente con ese CUIT")


def create_cliente(owner_id: int, payload: dict) -> Cliente:
    values = _clean_values(_normalize(payload))
    if not values.get("nombre"):
        raise ValidationError("El nombre es obligatorio")
    if not values.get("cuit"):
        raise ValidationError("El CUIT es obligatorio")
    values.setdefault("fecha_alta", date.today())
    _validate_recurring_fee(values.get("es_cliente_fijo", False), values.get("monto_mensualidad"))
    _ensure_unique_cuit(values["cuit"])

    cliente = Cliente(user_id=owner_id, **values)
    with unit_of_work("crear_cliente", usuario=owner_id, cuit=values["cuit"]):
        db.session.add(cliente)
    return cliente


def list_clientes(owner_id: int, activo: bool | None = None) -> list[Cliente]:
    query = Cliente.query.filter_by(user_id=owner_id)
    if activo is not None:
        query = query.filter_by(activo=activo)
    return query.order_by(Cliente.created_at.desc(), Cliente.id.desc()).all()


def cliente_by_id(cliente_id: int, owner_id: int) -> Cliente:
    cliente = Cliente.query.filter_by(id=cliente_id, user_id=owner_id).first()
    if not cliente:
        raise NotFoundError("Cliente")
    return cliente


def update_cliente(cliente_id: int, owner_id: int, payload: dict) -> Cliente:
    cliente = cliente_by_id(cliente_id, owner_id)
    values = _clean_values(_normalize(payload))
    if "nombre" in values and not values["nombre"]:
        raise ValidationError("El nombre es obligatorio")
    if values.get("cuit") and values["cuit"] != cliente.cuit:
        _ensure_unique_cuit(values["cuit"], exclude_id=cliente.id)
    _validate_recurring_fee(
        values.get("es_cliente_fijo", cliente.es_cliente_fijo),
        values.get("monto_mensualidad", cliente.monto_mensualidad),
    )
    with unit_of_work("editar_cliente", usuario=owner_id, cliente=cliente_id):
        for key, value in values.items():
            setattr(cliente, key, value)
    return cliente


def delete_cliente(cliente_id: int, owner_id: int) -> None:
    cliente = cliente_by_id(cliente_id, owner_id)
    if Operacion.query.filter_by(cliente_id=cliente.id).first():
        raise ConflictError("El cliente tiene operaciones asociadas y no puede eliminarse")
    with unit_of_work("eliminar_cliente", usuario=owner_id, cliente=cliente_id):
        db.session.delete(cliente)


def toggle_activo(cliente_id: int, owner_id: int) -> Cliente:
    cliente = cliente_by_id(cliente_id, owner_id)
    with unit_of_work("cambiar_activo_cliente", usuario=owner_id, cliente=cliente_id):
        cliente.activo = not cliente.activo
    return cliente


def search_clientes(owner_id: int, text_query: str) -> list[Cliente]:
    raw = (text_query or "").strip()
    if not raw:
        raise ValidationError("El termino de busqueda es requerido")
    like = f"%{raw}%"
    return (
        Cliente.query.filter_by(user_id=owner_id)
        .filter(
            or_(
                Cliente.nombre.ilike(like),
                Cliente.cuit.ilike(like),
                Cliente.contacto.ilike(like),
            )
        )
        .order_by(Cliente.nombre.asc())
        .all()
    )


def clientes_stats(owner_id: int) -> dict[str, int]:
    rows = (
        db.session.query(Cliente.activo, func.count(Cliente.id))
        .filter(Cliente.user_id == owner_id)
        .group_by(Cliente.activo)
        .all()
    )
    counts = {bool(activo): total for activo, total in rows}
    activos = counts.get(True, 0)
    inactivos = counts.get(False, 0)
    return {"total": activos + inactivos, "activos": activos, "inactivos": inactivos}


def find_active_recurring_clients(owner_id: int) -> list[Cliente]:
    return (
        Cliente.query.filter_by(user_id=owner_id, activo=True, es_cliente_fijo=True)
        .order_by(Cliente.nombre.asc(), Cliente.id.asc())
        .all()
    )
