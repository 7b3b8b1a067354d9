# ============================================================
# Finanzas - Modelos SQLAlchemy
# - Cuentas bancarias y su libro de movimientos (append-mostly)
# - Movimientos de caja (opcionalmente enlazados a un movimiento bancario)
# - Préstamos y su cronograma de pagos (PagoFinanciamiento)
#
# Reglas de persistencia:
#   * Importes en NUMERIC(14, 2) -> Decimal en Python.
#   * Enumerados como VARCHAR (native_enum=False) para que el mismo
#     esquema valga en Postgres y SQLite.
#   * Los códigos legibles (CTA001, PREST001...) son únicos por usuario;
#     el id interno es un string aleatorio con prefijo.
# ============================================================

from sqlalchemy import (
    Column, String, Integer, Boolean, Text, JSON,
    Date, DateTime, ForeignKey, CheckConstraint,
    Enum as SAEnum, UniqueConstraint, Numeric, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backend.app.db.base import Base
from backend.app.core.constants import (
    CategoriaBancaria,
    CategoriaCaja,
    EstadoMovimientoBancario,
    EstadoMovimientoCaja,
    EstadoPago,
    EstadoPrestamo,
    MetodoPagoBancario,
    MetodoPagoCaja,
    MetodoPagoPrestamo,
    ModuloDestino,
    Moneda,
    TipoCuenta,
    TipoMovimientoBancario,
    TipoMovimientoCaja,
    TipoPago,
    TipoPrestamo,
    TipoTasa,
)


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, length=40)


def _money(**kwargs) -> Column:
    return Column(Numeric(14, 2), **kwargs)


# =============================================
# 1. CUENTAS BANCARIAS
# =============================================

class CuentaBancaria(Base):
    __tablename__ = "cuentas_bancarias"

    id             = Column(String, primary_key=True, index=True)
    codigo         = Column(String(20), nullable=False)
    user_id        = Column(String, nullable=False, index=True)

    nombre         = Column(String(100), nullable=False)
    banco          = Column(String(100), nullable=False)
    tipo_cuenta    = Column(_enum(TipoCuenta, "tipo_cuenta"), nullable=False)
    numero_cuenta  = Column(String(50), nullable=False)
    titular        = Column(String(100), nullable=False)
    moneda         = Column(_enum(Moneda, "moneda"), nullable=False, default=Moneda.PEN)
    descripcion    = Column(String(300))

    saldo_inicial  = _money(nullable=False, default=0)
    # Saldo vivo: solo se toca con UPDATE condicionales (services/saldo_service.py)
    saldo_actual   = _money(nullable=False, default=0)
    saldo_minimo   = _money(nullable=False, default=0)

    activa         = Column(Boolean, nullable=False, default=True)
    fecha_ultimo_movimiento = Column(DateTime, nullable=True)

    createon   = Column(DateTime, server_default=func.now(), nullable=False)
    modifiedon = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "codigo", name="uq_cuenta_codigo"),
        UniqueConstraint("user_id", "numero_cuenta", "banco", name="uq_cuenta_numero_banco"),
        CheckConstraint("saldo_actual >= 0", name="ck_cuenta_saldo_no_negativo"),
    )

    movimientos = relationship(
        "MovimientoBancario",
        foreign_keys="MovimientoBancario.cuenta_id",
        back_populates="cuenta",
        order_by="MovimientoBancario.fecha",
    )


# =============================================
# 2. MOVIMIENTOS BANCARIOS
# =============================================

class MovimientoBancario(Base):
    __tablename__ = "movimientos_bancarios"

    id        = Column(String, primary_key=True, index=True)
    codigo    = Column(String(30), nullable=False)
    user_id   = Column(String, nullable=False, index=True)

    cuenta_id = Column(
        String,
        ForeignKey("cuentas_bancarias.id", onupdate="CASCADE", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    cuenta_destino_id = Column(
        String,
        ForeignKey("cuentas_bancarias.id", onupdate="CASCADE", ondelete="RESTRICT"),
        nullable=True,
    )

    tipo         = Column(_enum(TipoMovimientoBancario, "tipo_movimiento_bancario"), nullable=False)
    categoria    = Column(_enum(CategoriaBancaria, "categoria_bancaria"), nullable=False)
    subcategoria = Column(String(60))
    monto        = _money(nullable=False)
    moneda       = Column(_enum(Moneda, "moneda"), nullable=False, default=Moneda.PEN)
    descripcion  = Column(String(300), nullable=False)
    beneficiario = Column(String(150))
    metodo_pago  = Column(
        _enum(MetodoPagoBancario, "metodo_pago_bancario"),
        nullable=False,
        default=MetodoPagoBancario.transferencia,
    )
    numero_operacion = Column(String(80), nullable=False, unique=True)
    fecha        = Column(DateTime, nullable=False, index=True)

    # Foto del saldo en el instante del posting: nunca se recalcula
    saldo_anterior  = _money(nullable=False)
    saldo_posterior = _money(nullable=False)

    estado = Column(
        _enum(EstadoMovimientoBancario, "estado_movimiento_bancario"),
        nullable=False,
        default=EstadoMovimientoBancario.procesado,
    )
    es_saldo_inicial = Column(Boolean, nullable=False, default=False)

    movimiento_caja_id        = Column(String, nullable=True, index=True)
    movimiento_relacionado_id = Column(String, ForeignKey("movimientos_bancarios.id"), nullable=True)
    transferencia_id          = Column(String(40), nullable=True, index=True)

    motivo_cancelacion = Column(String(300))
    fecha_cancelacion  = Column(DateTime)
    cancelado_por      = Column(String)
    observaciones      = Column(Text)

    createon   = Column(DateTime, server_default=func.now(), nullable=False)
    modifiedon = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "codigo", name="uq_movimiento_bancario_codigo"),
        CheckConstraint("monto > 0", name="ck_movimiento_bancario_monto"),
        Index("ix_movimiento_bancario_cuenta_fecha", "cuenta_id", "fecha"),
    )

    cuenta = relationship("CuentaBancaria", foreign_keys=[cuenta_id], back_populates="movimientos")
    cuenta_destino = relationship("CuentaBancaria", foreign_keys=[cuenta_destino_id])
    movimiento_relacionado = relationship("MovimientoBancario", remote_side=[id])


# =============================================
# 3. MOVIMIENTOS DE CAJA
# =============================================

class MovimientoCaja(Base):
    __tablename__ = "movimientos_caja"

    id             = Column(String, primary_key=True, index=True)
    codigo         = Column(String(30), nullable=False)
    user_id        = Column(String, nullable=False, index=True)
    usuario_nombre = Column(String(150))

    tipo        = Column(_enum(TipoMovimientoCaja, "tipo_movimiento_caja"), nullable=False)
    monto       = _money(nullable=False)
    concepto    = Column(String(200), nullable=False)
    descripcion = Column(String(500))
    categoria   = Column(_enum(CategoriaCaja, "categoria_caja"), nullable=False)

    metodo_pago       = Column(_enum(MetodoPagoCaja, "metodo_pago_caja"), nullable=False)
    # {"billetes": {"b200": n, ...}, "monedas": {"m5": n, ...}}
    desglose_efectivo = Column(JSON, nullable=True)
    detalles_pago     = Column(String(120))

    estado = Column(
        _enum(EstadoMovimientoCaja, "estado_movimiento_caja"),
        nullable=False,
        default=EstadoMovimientoCaja.pendiente,
    )
    fecha  = Column(DateTime, nullable=False, index=True)

    # Integración con banco
    afecta_cuenta_bancaria = Column(Boolean, nullable=False, default=False)
    cuenta_bancaria_id     = Column(String, ForeignKey("cuentas_bancarias.id"), nullable=True)
    movimiento_bancario_id = Column(String, ForeignKey("movimientos_bancarios.id"), nullable=True)
    saldo_banco_anterior   = _money(nullable=True)
    saldo_banco_posterior  = _money(nullable=True)

    # Ciclo de vida
    validado_por      = Column(String)
    fecha_validacion  = Column(DateTime)
    modulo_destino    = Column(_enum(ModuloDestino, "modulo_destino"), nullable=True)
    referencia_modulo = Column(String(80))
    fecha_aplicacion  = Column(DateTime)
    observaciones     = Column(Text)

    createon   = Column(DateTime, server_default=func.now(), nullable=False)
    modifiedon = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "codigo", name="uq_movimiento_caja_codigo"),
        CheckConstraint("monto >= 0.01", name="ck_movimiento_caja_monto"),
    )

    cuenta_bancaria = relationship("CuentaBancaria")
    movimiento_bancario = relationship("MovimientoBancario")


# =============================================
# 4. PRÉSTAMOS
# =============================================

class Prestamo(Base):
    __tablename__ = "prestamos"

    id      = Column(String, primary_key=True, index=True)
    codigo  = Column(String(20), nullable=False)
    user_id = Column(String, nullable=False, index=True)

    tipo               = Column(_enum(TipoPrestamo, "tipo_prestamo"), nullable=False)
    entidad_financiera = Column(String(150), nullable=False)
    moneda             = Column(_enum(Moneda, "moneda"), nullable=False, default=Moneda.PEN)
    proposito          = Column(String(300))

    monto_solicitado = _money(nullable=False)
    monto_aprobado   = _money(nullable=False)
    tasa_interes     = Column(Numeric(7, 4), nullable=False)  # anual, en %
    tipo_tasa        = Column(_enum(TipoTasa, "tipo_tasa"), nullable=False, default=TipoTasa.fija)
    plazo_meses      = Column(Integer, nullable=False)
    cuota_mensual    = _money(nullable=False)
    saldo_pendiente  = _money(nullable=False)

    # Solo dos estados persistidos: el préstamo nace aprobado
    estado = Column(_enum(EstadoPrestamo, "estado_prestamo"), nullable=False, default=EstadoPrestamo.aprobado)

    fecha_solicitud    = Column(Date, nullable=False)
    fecha_aprobacion   = Column(DateTime)
    fecha_desembolso   = Column(Date)
    fecha_proximo_pago = Column(Date)
    dia_pago           = Column(Integer, nullable=False, default=15)
    tasa_mora_diaria   = Column(Numeric(7, 4), nullable=True)

    cuenta_desembolso_id = Column(String, ForeignKey("cuentas_bancarias.id"), nullable=True)
    cuenta_pago_id       = Column(String, ForeignKey("cuentas_bancarias.id"), nullable=True)

    # Estadísticas
    cuotas_pagadas           = Column(Integer, nullable=False, default=0)
    cuotas_pendientes        = Column(Integer, nullable=False, default=0)
    dias_vencidos            = Column(Integer, nullable=False, default=0)
    total_intereses_pagados  = _money(nullable=False, default=0)
    total_comisiones_pagadas = _money(nullable=False, default=0)

    observaciones = Column(Text)

    createon   = Column(DateTime, server_default=func.now(), nullable=False)
    modifiedon = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "codigo", name="uq_prestamo_codigo"),
        CheckConstraint("plazo_meses > 0", name="ck_prestamo_plazo"),
    )

    pagos = relationship(
        "PagoFinanciamiento",
        back_populates="prestamo",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PagoFinanciamiento.numero_cuota",
    )
    cuenta_desembolso = relationship("CuentaBancaria", foreign_keys=[cuenta_desembolso_id])
    cuenta_pago = relationship("CuentaBancaria", foreign_keys=[cuenta_pago_id])


# ============================
# Cronograma de pagos
# ============================

class PagoFinanciamiento(Base):
    __tablename__ = "pagos_financiamiento"

    id          = Column(String, primary_key=True, index=True)
    codigo      = Column(String(20), nullable=False)
    user_id     = Column(String, nullable=False, index=True)
    prestamo_id = Column(String, ForeignKey("prestamos.id", ondelete="CASCADE"), nullable=False)
    numero_cuota = Column(Integer, nullable=False)

    tipo   = Column(_enum(TipoPago, "tipo_pago"), nullable=False, default=TipoPago.cuota_regular)
    estado = Column(_enum(EstadoPago, "estado_pago"), nullable=False, default=EstadoPago.programado)

    monto_capital  = _money(nullable=False, default=0)
    monto_interes  = _money(nullable=False, default=0)
    monto_comision = _money(nullable=False, default=0)
    monto_mora     = _money(nullable=False, default=0)
    # [{"tipo": "pronto_pago", "descripcion": "...", "monto": "10.00", "porcentaje": null}]
    descuentos     = Column(JSON, nullable=False, default=list)
    monto_total    = _money(nullable=False, default=0)
    monto_pagado   = _money(nullable=False, default=0)
    moneda         = Column(_enum(Moneda, "moneda"), nullable=False, default=Moneda.PEN)

    fecha_programada  = Column(Date, nullable=False)
    fecha_vencimiento = Column(Date, nullable=False)
    fecha_pago        = Column(Date)

    metodo_pago            = Column(_enum(MetodoPagoPrestamo, "metodo_pago_prestamo"), nullable=True)
    numero_operacion       = Column(String(80))
    cuenta_origen_id       = Column(String, ForeignKey("cuentas_bancarias.id"), nullable=True)
    movimiento_bancario_id = Column(String, ForeignKey("movimientos_bancarios.id"), nullable=True)

    saldo_anterior  = _money(nullable=False, default=0)
    saldo_posterior = _money(nullable=False, default=0)
    dias_mora       = Column(Integer, nullable=False, default=0)
    tasa_mora       = Column(Numeric(7, 4), nullable=True)

    procesado_por  = Column(String)
    motivo_rechazo = Column(String(300))
    observaciones  = Column(Text)

    createon   = Column(DateTime, server_default=func.now(), nullable=False)
    modifiedon = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("prestamo_id", "numero_cuota", name="uq_pago_prestamo_cuota"),
        UniqueConstraint("user_id", "codigo", name="uq_pago_codigo"),
        Index("ix_pago_prestamo_estado", "prestamo_id", "estado"),
    )

    prestamo = relationship("Prestamo", back_populates="pagos")
