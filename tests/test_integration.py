from __future__ import annotations

import logging
from datetime import date

import pytest

from app.core.models import Cliente, EstadoOperacion, Operacion


def _first_cliente_id(owner_id: int) -> int:
    return Cliente.query.filter_by(user_id=owner_id).order_by(Cliente.id.asc()).first().id


def test_health_and_home(client):
    assert client.get("/health").get_json()["status"] == "healthy"
    assert client.get("/").get_json()["name"] == "estudio-contable"


def test_api_requires_login(client):
    response = client.get("/api/operaciones")
    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_login_with_wrong_password_is_rejected(client):
    response = client.post("/auth/login", json={"email": "contador@estudio.local", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json()["message"] == "Credenciales invalidas"


def test_register_and_profile(client):
    response = client.post(
        "/auth/register",
        json={"email": "Nueva@Estudio.local", "password": "clave123", "nombre": "Nueva Contadora"},
    )
    assert response.status_code == 201
    assert response.get_json()["user"]["email"] == "nueva@estudio.local"

    profile = client.patch("/auth/profile", json={"nombre": "Nueva C."})
    assert profile.get_json()["nombre"] == "Nueva C."

    duplicate = client.post(
        "/auth/register",
        json={"email": "nueva@estudio.local", "password": "clave123", "nombre": "Otra"},
    )
    assert duplicate.status_code == 409


def test_tenant_isolation_on_operacion(client, login_owner, second_owner):
    login_owner()
    operacion_id = second_owner["operacion_id"]

    assert client.get(f"/api/operaciones/{operacion_id}").status_code == 404
    assert client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": 100}).status_code == 404
    assert client.patch(f"/api/operaciones/{operacion_id}", json={"montoPagado": 0}).status_code == 404
    assert client.get(f"/api/clientes/{second_owner['cliente_id']}").status_code == 404


def test_create_operacion_for_foreign_client_is_not_found(client, login_owner, second_owner):
    login_owner()
    response = client.post(
        "/api/operaciones",
        json={
            "clienteId": second_owner["cliente_id"],
            "tipo": "ASESORIA",
            "monto": "1000",
            "fechaInicio": "2025-01-01",
        },
    )
    assert response.status_code == 404


def test_payment_flow_until_overpayment(client, login_owner, owner_id):
    login_owner()
    created = client.post(
        "/api/operaciones",
        json={
            "clienteId": _first_cliente_id(owner_id),
            "tipo": "asesoria",
            "monto": "10000",
            "fechaInicio": "2025-01-01",
            "fechaLimite": "2025-01-31",
        },
    )
    assert created.status_code == 201
    body = created.get_json()
    assert body["estado"] == "PENDIENTE"
    assert body["montoTotal"] == "10000.00"
    operacion_id = body["id"]

    first = client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": 3000})
    assert first.status_code == 200
    assert first.get_json()["estado"] == "EN_PROCESO"
    assert first.get_json()["montoPagado"] == "3000.00"
    assert first.get_json()["fechaCompletado"] is None

    second = client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": "7000"})
    assert second.get_json()["estado"] == "COMPLETADO"
    assert second.get_json()["fechaCompletado"] == date.today().isoformat()

    extra = client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": 1})
    assert extra.status_code == 400
    error = extra.get_json()
    assert error["error"] == "overpayment"
    assert error["restante"] == "0.00"
    assert "Monto restante: 0.00" in error["message"]
    assert client.get(f"/api/operaciones/{operacion_id}").get_json()["montoPagado"] == "10000.00"


def test_payment_reports_remaining_amount(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(honorarios="500.10", monto_pagado="200.05", estado=EstadoOperacion.EN_PROCESO)

    response = client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": "300.06"})

    assert response.status_code == 400
    assert response.get_json()["restante"] == "300.05"


def test_payment_amount_must_be_valid(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion()

    for payload in ({}, {"montoPago": 0}, {"montoPago": -10}, {"montoPago": "abc"}, {"montoPago": True}):
        response = client.post(f"/api/operaciones/{operacion_id}/pago", json=payload)
        assert response.status_code == 400, payload

    assert client.get(f"/api/operaciones/{operacion_id}").get_json()["montoPagado"] == "0.00"


def test_edit_can_regress_completed_operation(client, login_owner, make_operacion, caplog):
    login_owner()
    operacion_id = make_operacion(
        honorarios="5000",
        monto_pagado="5000",
        estado=EstadoOperacion.COMPLETADO,
        fecha_completado=date(2025, 1, 20),
    )

    with caplog.at_level(logging.INFO, logger="app.operaciones.services"):
        response = client.patch(f"/api/operaciones/{operacion_id}", json={"montoPagado": 0})

    assert response.status_code == 200
    body = response.get_json()
    assert body["estado"] == "PENDIENTE"
    assert body["fechaCompletado"] is None
    assert "deja de estar COMPLETADO" in caplog.text


def test_edit_paid_amount_checked_against_new_total(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(honorarios="5000", monto_pagado="1000", estado=EstadoOperacion.EN_PROCESO)

    rejected = client.patch(f"/api/operaciones/{operacion_id}", json={"monto": 4000, "montoPagado": 4500})
    assert rejected.status_code == 400
    assert rejected.get_json()["error"] == "exceeds_total"
    assert rejected.get_json()["montoTotal"] == "4000.00"

    accepted = client.patch(f"/api/operaciones/{operacion_id}", json={"monto": 4000, "montoPagado": 4000})
    assert accepted.status_code == 200
    assert accepted.get_json()["estado"] == "COMPLETADO"
    assert accepted.get_json()["montoTotal"] == "4000.00"


def test_lowering_total_below_paid_amount_is_rejected(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(honorarios="5000", monto_pagado="3000", estado=EstadoOperacion.EN_PROCESO)

    response = client.patch(f"/api/operaciones/{operacion_id}", json={"honorarios": 2000})

    assert response.status_code == 400
    assert response.get_json()["montoTotal"] == "2000.00"


def test_edit_checks_merged_dates(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(fecha_inicio=date(2025, 1, 10), fecha_limite=date(2025, 1, 31))

    response = client.patch(f"/api/operaciones/{operacion_id}", json={"fechaLimite": "2025-01-05"})
    assert response.status_code == 400

    response = client.patch(
        f"/api/operaciones/{operacion_id}",
        json={"fechaInicio": "2025-01-01", "fechaLimite": "2025-01-05", "notas": "Revisar"},
    )
    assert response.status_code == 200
    assert response.get_json()["fechaLimite"] == "2025-01-05"
    assert response.get_json()["notas"] == "Revisar"


def test_set_status_completed_pins_paid_amount(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(honorarios="2500", monto_pagado="100", estado=EstadoOperacion.EN_PROCESO)

    response = client.patch(f"/api/operaciones/{operacion_id}/estado", json={"estado": "COMPLETADO"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["estado"] == "COMPLETADO"
    assert body["montoPagado"] == "2500.00"
    assert body["fechaCompletado"] == date.today().isoformat()


def test_set_status_must_match_paid_amount(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion()

    mismatch = client.patch(f"/api/operaciones/{operacion_id}/estado", json={"estado": "EN_PROCESO"})
    assert mismatch.status_code == 400
    invalid = client.patch(f"/api/operaciones/{operacion_id}/estado", json={"estado": "CANCELADO"})
    assert invalid.status_code == 400
    assert client.get(f"/api/operaciones/{operacion_id}").get_json()["estado"] == "PENDIENTE"


def test_generar_mensuales_then_duplicate_conflict(client, login_owner, owner_id):
    login_owner()

    created = client.post("/api/operaciones/generar-mensuales", json={"dia": 1, "mes": 3, "anio": 2025})
    assert created.status_code == 201
    body = created.get_json()
    assert body["generadas"] == 2
    assert body["advertencias"] == []

    again = client.post("/api/operaciones/generar-mensuales", json={"dia": 1, "mes": 3, "anio": 2025})
    assert again.status_code == 409
    error = again.get_json()
    assert error["error"] == "already_generated"
    assert error["existentes"] == 2
    assert error["fecha"] == "2025-03-01"
    assert Operacion.query.filter_by(user_id=owner_id, es_mensualidad=True).count() == 2


def test_generar_mensuales_validates_input(client, login_owner):
    login_owner()
    assert client.post("/api/operaciones/generar-mensuales", json={"mes": 13}).status_code == 400
    assert client.post("/api/operaciones/generar-mensuales", json={"dia": "x"}).status_code == 400
    assert client.post("/api/operaciones/generar-mensuales", json={"anio": 2019}).status_code == 400


def test_list_operaciones_paginates_and_filters(client, login_owner, make_operacion):
    login_owner()
    make_operacion(fecha_limite=date(2025, 1, 10))
    make_operacion(fecha_limite=date(2025, 1, 20))
    make_operacion(monto_pagado="10000", estado=EstadoOperacion.COMPLETADO, fecha_completado=date(2025, 1, 15))

    page = client.get("/api/operaciones?limit=2").get_json()
    assert page["meta"] == {
        "total": 3,
        "page": 1,
        "limit": 2,
        "totalPages": 2,
        "hasNextPage": True,
        "hasPreviousPage": False,
    }
    assert [op["fechaLimite"] for op in page["data"]] == ["2025-01-10", "2025-01-20"]

    completed = client.get("/api/operaciones?estado=COMPLETADO").get_json()
    assert completed["meta"]["total"] == 1
    assert client.get("/api/operaciones?estado=RARO").status_code == 400


def test_delete_operacion(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion()

    assert client.delete(f"/api/operaciones/{operacion_id}").status_code == 200
    assert client.get(f"/api/operaciones/{operacion_id}").status_code == 404


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "sNaN"])
def test_non_finite_amounts_are_validation_errors(client, login_owner, make_operacion, amount):
    login_owner()
    operacion_id = make_operacion()

    payment = client.post(f"/api/operaciones/{operacion_id}/pago", json={"montoPago": amount})
    edit = client.patch(f"/api/operaciones/{operacion_id}", json={"montoPagado": amount})
    fee = client.patch(f"/api/operaciones/{operacion_id}", json={"monto": amount})

    assert payment.status_code == 400
    assert payment.get_json()["error"] == "validation"
    assert edit.status_code == 400
    assert fee.status_code == 400
    assert client.get(f"/api/operaciones/{operacion_id}").get_json()["montoPagado"] == "0.00"


def test_edit_rejects_status_that_disagrees_with_paid_amount(client, login_owner, make_operacion):
    login_owner()
    operacion_id = make_operacion(honorarios="5000")

    rejected = client.patch(
        f"/api/operaciones/{operacion_id}",
        json={"montoPagado": 1000, "estado": "COMPLETADO"},
    )
    assert rejected.status_code == 400
    body = client.get(f"/api/operaciones/{operacion_id}").get_json()
    assert body["montoPagado"] == "0.00"
    assert body["estado"] == "PENDIENTE"

    accepted = client.patch(
        f"/api/operaciones/{operacion_id}",
        json={"montoPagado": 1000, "estado": "EN_PROCESO"},
    )
    assert accepted.status_code == 200
    assert accepted.get_json()["estado"] == "EN_PROCESO"


def test_create_honours_or_rejects_requested_status(client, login_owner, owner_id):
    login_owner()
    payload = {
        "clienteId": _first_cliente_id(owner_id),
        "tipo": "OTRO",
        "monto": "800",
        "fechaInicio": "2025-01-01",
    }

    in_progress = client.post("/api/operaciones", json={**payload, "estado": "EN_PROCESO"})
    assert in_progress.status_code == 400

    mismatch = client.post("/api/operaciones", json={**payload, "montoPagado": "800", "estado": "PENDIENTE"})
    assert mismatch.status_code == 400

    completed = client.post("/api/operaciones", json={**payload, "estado": "COMPLETADO"})
    assert completed.status_code == 201
    assert completed.get_json()["montoPagado"] == "800.00"
    assert Operacion.query.count() == 1
