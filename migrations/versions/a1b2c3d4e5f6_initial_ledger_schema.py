"""initial ledger schema: usuarios, clientes, operaciones

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


TIPO_OPERACION = (
    "DECLARACION_IMPUESTOS",
    "CONTABILIDAD_MENSUAL",
    "ASESORIA",
    "LIQUIDACION_SUELDOS",
    "OTRO",
)
ESTADO_OPERACION = ("PENDIENTE", "EN_PROCESO", "COMPLETADO")


def upgrade():
    op.create_table(
        "usuario",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("foto_perfil", sa.Text(), nullable=True),
        sa.Column("rol", sa.String(length=30), nullable=False, server_default="contador"),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "cliente",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=200), nullable=False),
        sa.Column("cuit", sa.String(length=20), nullable=False),
        sa.Column("contacto", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("fecha_alta", sa.Date(), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("es_cliente_fijo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("monto_mensualidad", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "monto_mensualidad IS NULL OR monto_mensualidad >= 0",
            name="ck_cliente_monto_mensualidad",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cuit"),
    )
    with op.batch_alter_table("cliente", schema=None) as batch_op:
        batch_op.create_index("ix_cliente_user_id", ["user_id"], unique=False)
        batch_op.create_index(
            "ix_cliente_user_activo_fijo",
            ["user_id", "activo", "es_cliente_fijo"],
            unique=False,
        )

    op.create_table(
        "operacion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("cliente_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.Enum(*TIPO_OPERACION, name="tipo_operacion"), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("ingresos_brutos", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0.00"),
        sa.Column("honorarios", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0.00"),
        sa.Column("monto_total", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0.00"),
        sa.Column("monto_pagado", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0.00"),
        sa.Column("es_mensualidad", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "estado",
            sa.Enum(*ESTADO_OPERACION, name="estado_operacion"),
            nullable=False,
            server_default="PENDIENTE",
        ),
        sa.Column("fecha_inicio", sa.Date(), nullable=False),
        sa.Column("fecha_limite", sa.Date(), nullable=True),
        sa.Column("fecha_completado", sa.Date(), nullable=True),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("monto_total >= 0", name="ck_operacion_monto_total"),
        sa.CheckConstraint(
            "monto_pagado >= 0 AND monto_pagado <= monto_total",
            name="ck_operacion_monto_pagado",
        ),
        sa.CheckConstraint(
            "fecha_limite IS NULL OR fecha_limite >= fecha_inicio",
            name="ck_operacion_fechas",
        ),
        sa.ForeignKeyConstraint(["cliente_id"], ["cliente.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["usuario.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("operacion", schema=None) as batch_op:
        batch_op.create_index("ix_operacion_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_operacion_cliente_id", ["cliente_id"], unique=False)
        batch_op.create_index(
            "ix_operacion_user_estado_limite",
            ["user_id", "estado", "fecha_limite"],
            unique=False,
        )
        batch_op.create_index(
            "ix_operacion_user_completado",
            ["user_id", "estado", "fecha_completado"],
            unique=False,
        )
        batch_op.create_index(
            "ix_operacion_user_mensualidad_inicio",
            ["user_id", "es_mensualidad", "fecha_inicio"],
            unique=False,
        )
        batch_op.create_index(
            "uq_operacion_mensualidad_cliente_dia",
            ["cliente_id", "fecha_inicio"],
            unique=True,
            sqlite_where=sa.text("es_mensualidad = 1"),
            postgresql_where=sa.text("es_mensualidad"),
        )


def downgrade():
    with op.batch_alter_table("operacion", schema=None) as batch_op:
        batch_op.drop_index("uq_operacion_mensualidad_cliente_dia")
        batch_op.drop_index("ix_operacion_user_mensualidad_inicio")
        batch_op.drop_index("ix_operacion_user_completado")
        batch_op.drop_index("ix_operacion_user_estado_limite")
        batch_op.drop_index("ix_operacion_cliente_id")
        batch_op.drop_index("ix_operacion_user_id")
    op.drop_table("operacion")

    with op.batch_alter_table("cliente", schema=None) as batch_op:
        batch_op.drop_index("ix_cliente_user_activo_fijo")
        batch_op.drop_index("ix_cliente_user_id")
    op.drop_table("cliente")

    op.drop_table("usuario")
    sa.Enum(name="estado_operacion").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="tipo_operacion").drop(op.get_bind(), checkfirst=True)
