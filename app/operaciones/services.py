from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
import calendar
import logging

from flask import current_app
from sqlalchemy import func

from app.clientes.services import cliente_by_id, find_active_recurring_clients
from app.core.errors import (
    AlreadyGeneratedError,
    DataQualityWarning,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from app.core.extensions import db
from app.core.models import Cliente, EstadoOperacion, Operacion, TipoOperacion, User
from app.core.transactions import unit_of_work
from app.core.utils import ZERO, money
from app.operaciones.rules import (
    apply_payment,
    coerce_fee,
    derive_estado,
    mark_completed,
    recompute_state_from_paid_amount,
)

logger = logging.getLogger(__name__)

MESES = (
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
)

PAYLOAD_ALIASES = {
    "clienteId": "cliente_id",
    "fechaInicio": "fecha_inicio",
    "fechaLimite": "fecha_limite",
    "fechaCompletado": "fecha_completado",
    "montoPagado": "monto_pagado",
    "ingresosBrutos": "ingresos_brutos",
    "monto": "honorarios",
}


@dataclass
class GenerationResult:
    fecha: date
    clientes: list[dict[str, object]] = field(default_factory=list)
    advertencias: list[DataQualityWarning] = field(default_factory=list)
    mensaje: str | None = None

    @property
    def generadas(self) -> int:
        return len(self.clientes)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "generadas": self.generadas,
            "dia": self.fecha.day,
            "mes": self.fecha.month,
            "anio": self.fecha.year,
        }
        if self.mensaje:
            data["mensaje"] = self.mensaje
        else:
            data["clientes"] = self.clientes
            data["advertencias"] = [warning.to_dict() for warning in self.advertencias]
        return data


@dataclass
class SchedulerSummary:
    total_generadas: int = 0
    usuarios_con_generacion: int = 0
    usuarios_procesados: int = 0
    errores: list[dict[str, object]] = field(default_factory=list)


def _normalize(payload: dict) -> dict:
    return {PAYLOAD_ALIASES.get(key, key): value for key, value in payload.items()}


def _parse_date(value, field_name: str) -> date:
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Formato de fecha invalido para {field_name}") from exc


def _parse_optional_date(value, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    return _parse_date(value, field_name)


def _parse_amount(value, field_name: str) -> Decimal:
    if value in (None, ""):
        raise ValidationError(f"Falta {field_name}")
    if isinstance(value, bool):
        raise ValidationError(f"Importe invalido en {field_name}")
    try:
        amount = money(value)
    except ValueError as exc:
        raise ValidationError(f"Importe invalido en {field_name}") from exc
    if amount < 0:
        raise ValidationError(f"{field_name} no puede ser negativo")
    return amount


def _parse_id(value, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Identificador de {field_name} invalido") from exc


def _parse_tipo(value) -> TipoOperacion:
    try:
        return TipoOperacion(str(value or "").strip().upper())
    except ValueError as exc:
        raise ValidationError("Tipo de operacion invalido") from exc


def _parse_estado(value) -> EstadoOperacion:
    if isinstance(value, EstadoOperacion):
        return value
    try:
        return EstadoOperacion(str(value or "").strip().upper())
    except ValueError as exc:
        raise ValidationError("Estado de operacion invalido") from exc


def _validate_fechas(fecha_inicio: date | None, fecha_limite: date | None) -> None:
    if fecha_inicio and fecha_limite and fecha_inicio > fecha_limite:
        raise ValidationError("La fecha de inicio no puede ser mayor a la fecha limite")


def _validate_periodo(mes: int, anio: int) -> None:
    if mes < 1 or mes > 12:
        raise ValidationError("El mes debe estar entre 1 y 12")
    min_anio = current_app.config.get("REPORTES_MIN_ANIO", 2020)
    if anio < min_anio:
        raise ValidationError(f"El anio debe ser mayor o igual a {min_anio}")


def _month_bounds(mes: int, anio: int) -> tuple[date, date]:
    last_day = calendar.monthrange(anio, mes)[1]
    return date(anio, mes, 1), date(anio, mes, last_day)


def operacion_by_id(operacion_id: int, owner_id: int) -> Operacion:
    operacion = Operacion.query.filter_by(id=operacion_id, user_id=owner_id).first()
    if not operacion:
        raise NotFoundError("Operacion")
    return operacion


def _locked_operacion(operacion_id: int, owner_id: int) -> Operacion:
    # Read-modify-write on amounts must not interleave for the same row
    operacion = (
        Operacion.query.filter_by(id=operacion_id, user_id=owner_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not operacion:
        raise NotFoundError("Operacion")
    return operacion


def create_operacion(owner_id: int, payload: dict, hoy: date | None = None) -> Operacion:
    values = _normalize(payload)
    tipo = _parse_tipo(values.get("tipo"))
    cliente_id = values.get("cliente_id")
    if not cliente_id:
        raise ValidationError("El cliente es obligatorio")
    cliente = cliente_by_id(_parse_id(cliente_id, "cliente"), owner_id)
    honorarios = _parse_amount(values.get("honorarios"), "honorarios")
    fecha_inicio = _parse_date(values.get("fecha_inicio"), "fecha de inicio")
    fecha_limite = _parse_optional_date(values.get("fecha_limite"), "fecha limite")
    _validate_fechas(fecha_inicio, fecha_limite)

    operacion = Operacion(
        user_id=owner_id,
        cliente_id=cliente.id,
        tipo=tipo,
        descripcion=(values.get("descripcion") or None),
        ingresos_brutos=_parse_amount(values.get("ingresos_brutos") or "0", "ingresos brutos"),
        honorarios=honorarios,
        fecha_inicio=fecha_inicio,
        fecha_limite=fecha_limite,
        notas=(values.get("notas") or None),
    )
    estado = _parse_estado(values["estado"]) if values.get("estado") else None
    if "monto_pagado" in values:
        recompute_state_from_paid_amount(
            operacion, _parse_amount(values["monto_pagado"], "monto pagado"), hoy=hoy
        )
        if estado is not None:
            _check_estado(estado, operacion.estado)
    else:
        recompute_state_from_paid_amount(operacion, ZERO, hoy=hoy)
        if estado is not None:
            _apply_estado(operacion, estado, hoy)

    with unit_of_work("crear_operacion", usuario=owner_id, cliente=cliente.id):
        db.session.add(operacion)
    return operacion


def list_operaciones(
    owner_id: int,
    estado: str | None = None,
    cliente_id: int | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict[str, object]:
    default_limit = current_app.config.get("OPERACIONES_PAGE_SIZE", 20)
    max_limit = current_app.config.get("OPERACIONES_MAX_PAGE_SIZE", 100)
    valid_page = max(1, page or 1)
    valid_limit = min(max_limit, max(1, limit or default_limit))

    query = Operacion.query.filter_by(user_id=owner_id)
    if estado:
        query = query.filter(Operacion.estado == _parse_estado(estado))
    if cliente_id:
        query = query.filter(Operacion.cliente_id == cliente_id)

    total = query.count()
    rows = (
        query.order_by(
            Operacion.fecha_limite.is_(None),
            Operacion.fecha_limite.asc(),
            Operacion.created_at.desc(),
            Operacion.id.desc(),
        )
        .offset((valid_page - 1) * valid_limit)
        .limit(valid_limit)
        .all()
    )
    total_pages = -(-total // valid_limit)
    return {
        "data": rows,
        "meta": {
            "total": total,
            "page": valid_page,
            "limit": valid_limit,
            "totalPages": total_pages,
            "hasNextPage": valid_page < total_pages,
            "hasPreviousPage": valid_page > 1,
        },
    }


def edit_operacion(operacion_id: int, owner_id: int, patch: dict, hoy: date | None = None) -> Operacion:
    """Apply a partial edit to an operation.

    ``monto_pagado`` in the patch is a direct set, not a payment: it may lower
    the paid amount and move a completed operation back to ``EN_PROCESO`` or
    ``PENDIENTE``. A new ``honorarios`` becomes the effective total for that
    check. An ``estado`` sent along with ``monto_pagado`` must match the state
    derived from it.
    """
    values = _normalize(patch)
    with unit_of_work("editar_operacion", usuario=owner_id, operacion=operacion_id):
        operacion = _locked_operacion(operacion_id, owner_id)
        estado_anterior = operacion.estado

        if values.get("cliente_id"):
            nuevo_cliente_id = _parse_id(values["cliente_id"], "cliente")
            if nuevo_cliente_id != operacion.cliente_id:
                operacion.cliente_id = cliente_by_id(nuevo_cliente_id, owner_id).id

        fecha_inicio = (
            _parse_date(values["fecha_inicio"], "fecha de inicio")
            if "fecha_inicio" in values
            else operacion.fecha_inicio
        )
        fecha_limite = (
            _parse_optional_date(values["fecha_limite"], "fecha limite")
            if "fecha_limite" in values
            else operacion.fecha_limite
        )
        _validate_fechas(fecha_inicio, fecha_limite)

        nuevo_total = _parse_amount(values["honorarios"], "honorarios") if "honorarios" in values else None
        estado = _parse_estado(values["estado"]) if values.get("estado") else None

        if "monto_pagado" in values:
            recompute_state_from_paid_amount(
                operacion,
                _parse_amount(values["monto_pagado"], "monto pagado"),
                nuevo_total,
                hoy=hoy,
            )
            if estado is not None:
                _check_estado(estado, operacion.estado)
        elif nuevo_total is not None:
            recompute_state_from_paid_amount(operacion, operacion.monto_pagado, nuevo_total, hoy=hoy)

        if estado is not None and "monto_pagado" not in values:
            _apply_estado(operacion, estado, hoy)

        if "fecha_completado" in values and operacion.estado == EstadoOperacion.COMPLETADO:
            fecha_completado = _parse_optional_date(values["fecha_completado"], "fecha de completado")
            if fecha_completado:
                operacion.fecha_completado = fecha_completado

        if "tipo" in values:
            operacion.tipo = _parse_tipo(values["tipo"])
        if "ingresos_brutos" in values:
            operacion.ingresos_brutos = _parse_amount(values["ingresos_brutos"], "ingresos brutos")
        for key in ("descripcion", "notas"):
            if key in values:
                setattr(operacion, key, values[key] or None)
        operacion.fecha_inicio = fecha_inicio
        operacion.fecha_limite = fecha_limite

        if (
            estado_anterior == EstadoOperacion.COMPLETADO
            and operacion.estado != EstadoOperacion.COMPLETADO
        ):
            logger.info(
                "Operacion %s deja de estar COMPLETADO por edicion (ahora %s)",
                operacion.id,
                operacion.estado.value,
            )
    return operacion


def _apply_estado(operacion: Operacion, estado: EstadoOperacion, hoy: date | None) -> None:
    if estado == EstadoOperacion.COMPLETADO:
        mark_completed(operacion, hoy=hoy)
        return
    _check_estado(estado, derive_estado(money(operacion.monto_pagado), money(operacion.monto_total)))
    operacion.estado = estado


def _check_estado(estado: EstadoOperacion, derivado: EstadoOperacion) -> None:
    if estado != derivado:
        raise ValidationError(
            f"El estado {estado.value} no corresponde al monto pagado; "
            f"actualice el monto pagado (estado actual segun pagos: {derivado.value})"
        )


def set_status(operacion_id: int, owner_id: int, estado, hoy: date | None = None) -> Operacion:
    nuevo_estado = _parse_estado(estado)
    with unit_of_work("cambiar_estado", usuario=owner_id, operacion=operacion_id):
        operacion = _locked_operacion(operacion_id, owner_id)
        logger.info(
            "Cambiando estado de operacion %s de %s a %s",
            operacion.id,
            operacion.estado.value,
            nuevo_estado.value,
        )
        _apply_estado(operacion, nuevo_estado, hoy)
    return operacion


def record_payment(operacion_id: int, owner_id: int, monto_pago, hoy: date | None = None) -> Operacion:
    if isinstance(monto_pago, bool):
        raise ValidationError("El monto del pago debe ser un numero valido")
    with unit_of_work("registrar_pago", usuario=owner_id, operacion=operacion_id):
        operacion = _locked_operacion(operacion_id, owner_id)
        apply_payment(operacion, monto_pago, hoy=hoy)
    return operacion


def delete_operacion(operacion_id: int, owner_id: int) -> None:
    with unit_of_work("eliminar_operacion", usuario=owner_id, operacion=operacion_id):
        operacion = operacion_by_id(operacion_id, owner_id)
        db.session.delete(operacion)


def _target_date(dia: int | None, mes: int | None, anio: int | None, hoy: date) -> date:
    target_anio = anio or hoy.year
    target_mes = mes or hoy.month
    target_dia = dia or hoy.day
    if target_mes < 1 or target_mes > 12:
        raise ValidationError("El mes debe estar entre 1 y 12")
    min_anio = current_app.config.get("REPORTES_MIN_ANIO", 2020)
    if target_anio < min_anio:
        raise ValidationError(f"El anio debe ser mayor o igual a {min_anio}")
    try:
        return date(target_anio, target_mes, target_dia)
    except ValueError as exc:
        raise ValidationError(f"Fecha invalida: {target_dia}/{target_mes}/{target_anio}") from exc


def _lock_owner(owner_id: int) -> User:
    # Serialises guard-then-insert per owner on databases with row locks
    owner = User.query.filter_by(id=owner_id).with_for_update().first()
    if not owner:
        raise NotFoundError("Usuario")
    return owner


def generate_monthly(
    owner_id: int,
    dia: int | None = None,
    mes: int | None = None,
    anio: int | None = None,
    hoy: date | None = None,
) -> GenerationResult:
    """Create one PENDIENTE operation per active recurring client for a day.

    The duplicate guard and the batch insert share one transaction: either
    every client gets its operation or none does. A second run for the same
    owner and day raises ``AlreadyGeneratedError``.
    """
    fecha = _target_date(dia, mes, anio, hoy or date.today())
    result = GenerationResult(fecha=fecha)

    with unit_of_work("generar_mensualidades", usuario=owner_id, fecha=fecha.isoformat()):
        _lock_owner(owner_id)
        existentes = (
            Operacion.query.filter_by(user_id=owner_id, es_mensualidad=True)
            .filter(Operacion.fecha_inicio == fecha)
            .count()
        )
        if existentes:
            raise AlreadyGeneratedError(existentes, fecha)

        clientes = find_active_recurring_clients(owner_id)
        if not clientes:
            result.mensaje = "No hay clientes fijos activos"
            return result

        operaciones = []
        for cliente in clientes:
            monto, valido = coerce_fee(cliente.monto_mensualidad)
            if not valido:
                warning = DataQualityWarning(
                    cliente_id=cliente.id,
                    cliente_nombre=cliente.nombre,
                    valor=cliente.monto_mensualidad,
                    mensaje="Monto de mensualidad invalido; se genera con monto 0",
                )
                result.advertencias.append(warning)
                logger.warning(
                    "Cliente %s (%s) tiene un monto de mensualidad invalido: %s",
                    cliente.nombre,
                    cliente.id,
                    cliente.monto_mensualidad,
                )
            operaciones.append(
                Operacion(
                    user_id=owner_id,
                    cliente_id=cliente.id,
                    tipo=TipoOperacion.CONTABILIDAD_MENSUAL,
                    descripcion=f"Mensualidad {fecha.day}/{fecha.month}/{fecha.year}",
                    honorarios=monto,
                    monto_pagado=ZERO,
                    es_mensualidad=True,
                    estado=EstadoOperacion.PENDIENTE,
                    fecha_inicio=fecha,
                    fecha_limite=fecha,
                )
            )
            result.clientes.append({"id": cliente.id, "nombre": cliente.nombre})

        db.session.add_all(operaciones)
        db.session.flush()

    logger.info(
        "Generadas %s mensualidades para usuario %s (%s)",
        result.generadas,
        owner_id,
        fecha.isoformat(),
    )
    return result


def generate_monthly_for_all_owners(
    dia: int | None = None,
    mes: int | None = None,
    anio: int | None = None,
    hoy: date | None = None,
    email: str | None = None,
) -> SchedulerSummary:
    summary = SchedulerSummary()
    query = User.query.filter_by(activo=True)
    if email:
        query = query.filter_by(email=email.strip().lower())
    owners = [(owner.id, owner.email) for owner in query.order_by(User.id.asc()).all()]

    for owner_id, owner_email in owners:
        summary.usuarios_procesados += 1
        try:
            result = generate_monthly(owner_id, dia, mes, anio, hoy=hoy)
        except LedgerError as exc:
            logger.warning("Mensualidades no generadas para usuario %s: %s", owner_email, exc)
            summary.errores.append({"usuario": owner_email, "error": exc.kind, "mensaje": str(exc)})
            continue
        except Exception as exc:
            db.session.rollback()
            logger.exception("Error generando mensualidades para usuario %s", owner_email)
            summary.errores.append(
                {"usuario": owner_email, "error": getattr(exc, "kind", "unexpected"), "mensaje": str(exc)}
            )
            continue
        if result.generadas:
            summary.total_generadas += result.generadas
            summary.usuarios_con_generacion += 1
            logger.info("Usuario %s: %s mensualidades generadas", owner_email, result.generadas)

    logger.info(
        "Generacion automatica completada: %s mensualidades para %s usuarios",
        summary.total_generadas,
        summary.usuarios_con_generacion,
    )
    return summary


def fix_montos_mensualidades(owner_id: int, hoy: date | None = None) -> dict[str, object]:
    with unit_of_work("corregir_mensualidades", usuario=owner_id):
        operaciones = (
            Operacion.query.join(Cliente, Cliente.id == Operacion.cliente_id)
            .filter(Operacion.user_id == owner_id)
            .filter(Operacion.es_mensualidad.is_(True))
            .filter(Operacion.monto_total == 0)
            .filter(Cliente.monto_mensualidad > 0)
            .order_by(Operacion.fecha_inicio.asc(), Operacion.id.asc())
            .with_for_update()
            .all()
        )
        actualizadas = []
        for operacion in operaciones:
            nuevo = money(operacion.cliente.monto_mensualidad)
            recompute_state_from_paid_amount(operacion, operacion.monto_pagado, nuevo, hoy=hoy)
            actualizadas.append(
                {
                    "id": operacion.id,
                    "cliente": operacion.cliente.nombre,
                    "montoAnterior": "0.00",
                    "montoNuevo": f"{nuevo:.2f}",
                }
            )

    if not actualizadas:
        return {
            "actualizadas": 0,
            "mensaje": "No hay operaciones de mensualidad con monto 0 para corregir",
        }
    logger.info(
        "Se corrigieron %s operaciones de mensualidad para el usuario %s",
        len(actualizadas),
        owner_id,
    )
    return {
        "actualizadas": len(actualizadas),
        "mensaje": f"Se actualizaron {len(actualizadas)} operaciones de mensualidad",
        "operaciones": actualizadas,
    }


def proximos_vencimientos(owner_id: int, dias: int = 7, hoy: date | None = None) -> list[Operacion]:
    hoy = hoy or date.today()
    return (
        Operacion.query.filter_by(user_id=owner_id, estado=EstadoOperacion.PENDIENTE)
        .filter(Operacion.fecha_limite >= hoy, Operacion.fecha_limite <= hoy + timedelta(days=dias))
        .order_by(Operacion.fecha_limite.asc(), Operacion.id.asc())
        .all()
    )


def vencidas(owner_id: int, hoy: date | None = None) -> list[Operacion]:
    hoy = hoy or date.today()
    return (
        Operacion.query.filter_by(user_id=owner_id, estado=EstadoOperacion.PENDIENTE)
        .filter(Operacion.fecha_limite <= hoy)
        .order_by(Operacion.fecha_limite.asc(), Operacion.id.asc())
        .all()
    )


def operaciones_stats(owner_id: int, hoy: date | None = None) -> dict[str, object]:
    hoy = hoy or date.today()
    rows = (
        db.session.query(Operacion.estado, func.count(Operacion.id), func.sum(Operacion.monto_total))
        .filter(Operacion.user_id == owner_id)
        .group_by(Operacion.estado)
        .all()
    )
    counts = {estado: (total, money(suma)) for estado, total, suma in rows}
    vencidas_count = (
        Operacion.query.filter_by(user_id=owner_id, estado=EstadoOperacion.PENDIENTE)
        .filter(Operacion.fecha_limite <= hoy)
        .count()
    )

    def _count(estado: EstadoOperacion) -> int:
        return counts.get(estado, (0, ZERO))[0]

    def _sum(estado: EstadoOperacion) -> Decimal:
        return counts.get(estado, (0, ZERO))[1]

    monto_total = sum((suma for _total, suma in counts.values()), ZERO)
    return {
        "total": sum(total for total, _suma in counts.values()),
        "pendientes": _count(EstadoOperacion.PENDIENTE),
        "enProceso": _count(EstadoOperacion.EN_PROCESO),
        "completadas": _count(EstadoOperacion.COMPLETADO),
        "vencidas": vencidas_count,
        "montoTotal": f"{monto_total:.2f}",
        "montoPendiente": f"{_sum(EstadoOperacion.PENDIENTE):.2f}",
        "montoEnProceso": f"{_sum(EstadoOperacion.EN_PROCESO):.2f}",
        "montoCompletado": f"{_sum(EstadoOperacion.COMPLETADO):.2f}",
    }


def operaciones_por_mes(owner_id: int, mes: int, anio: int) -> list[Operacion]:
    _validate_periodo(mes, anio)
    primer_dia, ultimo_dia = _month_bounds(mes, anio)
    return (
        Operacion.query.filter_by(user_id=owner_id)
        .filter(Operacion.fecha_limite >= primer_dia, Operacion.fecha_limite <= ultimo_dia)
        .order_by(Operacion.fecha_limite.asc(), Operacion.id.asc())
        .all()
    )


def operaciones_completadas_mes(owner_id: int, mes: int, anio: int) -> list[dict[str, object]]:
    _validate_periodo(mes, anio)
    primer_dia, ultimo_dia = _month_bounds(mes, anio)
    rows = (
        db.session.query(Operacion.id, Operacion.monto_total, Operacion.fecha_completado, Cliente.nombre)
        .join(Cliente, Cliente.id == Operacion.cliente_id)
        .filter(Operacion.user_id == owner_id)
        .filter(Operacion.estado == EstadoOperacion.COMPLETADO)
        .filter(Operacion.fecha_completado.is_not(None))
        .filter(Operacion.fecha_completado >= primer_dia, Operacion.fecha_completado <= ultimo_dia)
        .order_by(Operacion.fecha_completado.desc(), Operacion.created_at.desc())
        .all()
    )
    return [
        {
            "id": op_id,
            "clienteNombre": cliente_nombre,
            "fechaCompletado": fecha_completado.isoformat(),
            "montoTotal": f"{money(monto_total):.2f}",
        }
        for op_id, monto_total, fecha_completado, cliente_nombre in rows
    ]


def estadisticas_anuales(owner_id: int, anio: int) -> dict[str, object]:
    _validate_periodo(1, anio)
    rows = (
        db.session.query(Operacion.fecha_completado, Operacion.monto_total)
        .filter(Operacion.user_id == owner_id)
        .filter(Operacion.estado == EstadoOperacion.COMPLETADO)
        .filter(Operacion.fecha_completado >= date(anio, 1, 1))
        .filter(Operacion.fecha_completado <= date(anio, 12, 31))
        .all()
    )
    totals = [ZERO] * 12
    for fecha_completado, monto_total in rows:
        totals[fecha_completado.month - 1] += money(monto_total)
    return {
        "anio": anio,
        "meses": [
            {"mes": index + 1, "nombreMes": MESES[index], "totalMonto": f"{totals[index]:.2f}"}
            for index in range(12)
        ],
    }
