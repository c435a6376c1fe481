from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class TechnicianDB(Base):
    __tablename__ = "technicians"
    __table_args__ = (UniqueConstraint("username"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    role: Mapped[str] = mapped_column(String, default="tech", index=True)  # admin | tech | staff
    hashed_password: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class CustomerDB(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("contact_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String)
    middle_name: Mapped[str] = mapped_column(String, default="")
    last_name: Mapped[str] = mapped_column(String)
    suffix: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contact_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    tickets: Mapped[List["TicketDB"]] = relationship(back_populates="customer")


class TicketDB(Base):
    __tablename__ = "tickets"
    __table_args__ = (UniqueConstraint("ticket_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    ticket_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    unit: Mapped[str] = mapped_column(String, default="Unknown Unit")
    problem: Mapped[str] = mapped_column(Text, default="Not specified")
    status: Mapped[Optional[str]] = mapped_column(String, default="Pending", index=True)
    images = Column(JSON)
    qr_code_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    customer: Mapped[Optional[CustomerDB]] = relationship(back_populates="tickets")
    logs: Mapped[List["TicketLogDB"]] = relationship(
        back_populates="ticket",
        order_by="TicketLogDB.seq",
        cascade="all, delete-orphan",
    )


class TicketLogDB(Base):
    __tablename__ = "ticket_logs"

    # seq gives a stable chronological order when timestamps tie
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String, unique=True, index=True)
    ticket_id: Mapped[int] = mapped_column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    text = Column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    ticket: Mapped[TicketDB] = relationship(back_populates="logs")
