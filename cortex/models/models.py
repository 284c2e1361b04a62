from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cortex.core.db import Base


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nome: Mapped[str] = mapped_column(String(160), index=True)
    cnpj: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="ativo", index=True)
    cluster: Mapped[str] = mapped_column(String(60), default="")
    responsavel: Mapped[str] = mapped_column(String(120), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    contracts = relationship("Contract", back_populates="client", cascade="all, delete-orphan")
    entries = relationship("DfcEntry", back_populates="client")


class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), index=True)
    servico: Mapped[str] = mapped_column(String(120))
    status: Mapped[str] = mapped_column(String(30), default="ativo", index=True)
    valor_recorrente: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    valor_pontual: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    squad: Mapped[str] = mapped_column(String(60), default="")
    data_inicio: Mapped[date | None] = mapped_column(Date, nullable=True)
    data_encerramento: Mapped[date | None] = mapped_column(Date, nullable=True)

    client = relationship("Client", back_populates="contracts")


class DfcCategory(Base):
    __tablename__ = "dfc_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    categoria_id: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    nome: Mapped[str] = mapped_column(String(160))
    tipo: Mapped[str] = mapped_column(String(10), index=True)


class DfcEntry(Base):
    __tablename__ = "dfc_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    categoria_id: Mapped[str] = mapped_column(String(40), index=True)
    tipo: Mapped[str] = mapped_column(String(10), index=True)
    descricao: Mapped[str] = mapped_column(String(255), default="")
    valor_pago: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    data_vencimento: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(24), default="pago")
    client_id: Mapped[int | None] = mapped_column(ForeignKey("clients.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    client = relationship("Client", back_populates="entries")
