from __future__ import annotations

from flask import jsonify, request
from flask_login import login_required

from app.clientes import clientes_bp
from app.clientes.services import (
    cliente_by_id,
    clientes_stats,
    create_cliente,
    delete_cliente,
    list_clientes,
    search_clientes,
    toggle_activo,
    update_cliente,
)
from app.core.permissions import require_owner
from app.core.tenancy import owner_id


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@clientes_bp.get("")
@login_required
@require_owner
def clientes_list():
    raw = request.args.get("activo")
    activo = None if raw is None else raw.strip().lower() in {"1", "true", "si"}
    return jsonify([cliente.to_dict() for cliente in list_clientes(owner_id(), activo)])


@clientes_bp.post("")
@login_required
@require_owner
def clientes_create():
    cliente = create_cliente(owner_id(), _payload())
    return jsonify(cliente.to_dict()), 201


@clientes_bp.get("/stats")
@login_required
@require_owner
def clientes_stats_view():
    return jsonify(clientes_stats(owner_id()))


@clientes_bp.get("/buscar")
@login_required
@require_owner
def clientes_search():
    rows = search_clientes(owner_id(), request.args.get("q", ""))
    return jsonify([cliente.to_dict() for cliente in rows])


@clientes_bp.get("/<int:cliente_id>")
@login_required
@require_owner
def clientes_detail(cliente_id: int):
    return jsonify(cliente_by_id(cliente_id, owner_id()).to_dict())


@clientes_bp.patch("/<int:cliente_id>")
@login_required
@require_owner
def clientes_update(cliente_id: int):
    return jsonify(update_cliente(cliente_id, owner_id(), _payload()).to_dict())


@clientes_bp.patch("/<int:cliente_id>/toggle-activo")
@login_required
@require_owner
def clientes_toggle(cliente_id: int):
    return jsonify(toggle_activo(cliente_id, owner_id()).to_dict())


@clientes_bp.delete("/<int:cliente_id>")
@login_required
@require_owner
def clientes_delete(cliente_id: int):
    delete_cliente(cliente_id, owner_id())
    return jsonify({"message": "Cliente eliminado correctamente"})
