from __future__ import annotations

from flask import jsonify, request
from flask_login import login_required

from app.core.errors import ValidationError
from app.core.permissions import require_owner
from app.core.tenancy import owner_id
from app.operaciones import operaciones_bp
from app.operaciones.services import (
    create_operacion,
    delete_operacion,
    edit_operacion,
    estadisticas_anuales,
    fix_montos_mensualidades,
    generate_monthly,
    list_operaciones,
    operacion_by_id,
    operaciones_completadas_mes,
    operaciones_por_mes,
    operaciones_stats,
    proximos_vencimientos,
    record_payment,
    set_status,
    vencidas,
)

MAX_DIAS_VENCIMIENTO = 365


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _optional_int(payload: dict, key: str, low: int, high: int | None = None) -> int | None:
    value = payload.get(key)
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} debe ser un numero") from exc
    if number < low or (high is not None and number > high):
        rango = f"entre {low} y {high}" if high is not None else f"mayor o igual a {low}"
        raise ValidationError(f"{key} debe ser {rango}")
    return number


@operaciones_bp.get("")
@login_required
@require_owner
def operaciones_list():
    result = list_operaciones(
        owner_id(),
        estado=request.args.get("estado") or None,
        cliente_id=request.args.get("clienteId", type=int),
        page=request.args.get("page", default=1, type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"data": [op.to_dict() for op in result["data"]], "meta": result["meta"]})


@operaciones_bp.post("")
@login_required
@require_owner
def operaciones_create():
    operacion = create_operacion(owner_id(), _payload())
    return jsonify(operacion.to_dict()), 201


@operaciones_bp.get("/stats")
@login_required
@require_owner
def operaciones_stats_view():
    return jsonify(operaciones_stats(owner_id()))


@operaciones_bp.get("/proximos-vencimientos")
@login_required
@require_owner
def operaciones_proximos_vencimientos():
    dias = _optional_int(request.args, "dias", 1, MAX_DIAS_VENCIMIENTO) or 7
    return jsonify([op.to_dict() for op in proximos_vencimientos(owner_id(), dias)])


@operaciones_bp.get("/vencidas")
@login_required
@require_owner
def operaciones_vencidas():
    return jsonify([op.to_dict() for op in vencidas(owner_id())])


@operaciones_bp.get("/mes/<int:mes>/anio/<int:anio>")
@login_required
@require_owner
def operaciones_mes(mes: int, anio: int):
    return jsonify([op.to_dict() for op in operaciones_por_mes(owner_id(), mes, anio)])


@operaciones_bp.get("/reportes/mes-completado/<int:mes>/anio/<int:anio>")
@login_required
@require_owner
def operaciones_completadas(mes: int, anio: int):
    return jsonify(operaciones_completadas_mes(owner_id(), mes, anio))


@operaciones_bp.get("/reportes/estadisticas-anuales/<int:anio>")
@login_required
@require_owner
def operaciones_estadisticas_anuales(anio: int):
    return jsonify(estadisticas_anuales(owner_id(), anio))


@operaciones_bp.post("/generar-mensuales")
@login_required
@require_owner
def operaciones_generar_mensuales():
    payload = _payload()
    result = generate_monthly(
        owner_id(),
        dia=_optional_int(payload, "dia", 1, 31),
        mes=_optional_int(payload, "mes", 1, 12),
        anio=_optional_int(payload, "anio", 2020),
    )
    return jsonify(result.to_dict()), 201


@operaciones_bp.post("/fix-montos-mensualidades")
@login_required
@require_owner
def operaciones_fix_montos():
    return jsonify(fix_montos_mensualidades(owner_id()))


@operaciones_bp.get("/<int:operacion_id>")
@login_required
@require_owner
def operaciones_detail(operacion_id: int):
    return jsonify(operacion_by_id(operacion_id, owner_id()).to_dict())


@operaciones_bp.patch("/<int:operacion_id>")
@login_required
@require_owner
def operaciones_update(operacion_id: int):
    return jsonify(edit_operacion(operacion_id, owner_id(), _payload()).to_dict())


@operaciones_bp.patch("/<int:operacion_id>/estado")
@login_required
@require_owner
def operaciones_estado(operacion_id: int):
    estado = _payload().get("estado")
    return jsonify(set_status(operacion_id, owner_id(), estado).to_dict())


@operaciones_bp.post("/<int:operacion_id>/pago")
@login_required
@require_owner
def operaciones_pago(operacion_id: int):
    payload = _payload()
    if payload.get("montoPago") in (None, ""):
        raise ValidationError("El monto es obligatorio")
    return jsonify(record_payment(operacion_id, owner_id(), payload["montoPago"]).to_dict())


@operaciones_bp.delete("/<int:operacion_id>")
@login_required
@require_owner
def operaciones_delete(operacion_id: int):
    delete_operacion(operacion_id, owner_id())
    return jsonify({"message": "Operacion eliminada correctamente"})
