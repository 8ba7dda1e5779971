# app/models.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    Time,
    Boolean,
    Numeric,
    ForeignKey,
    DateTime,
    JSON,
    Enum,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .db import Base
from .states import (
    BookingPaymentStatus,
    BookingStatus,
    DiscountType,
    InvoicePaymentStatus,
    InvoiceType,
    PaymentStatus,
    SessionStatus,
    SubscriptionStatus,
)

Money = Numeric(10, 2, asdecimal=True)


def _enum(cls):
    return Enum(cls, native_enum=False, length=20, validate_strings=True)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(16), nullable=False, default="parent")  # parent | staff | admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    category = Column(String(50), nullable=True)
    base_price = Column(Money, nullable=True)  # NULL = quote on request
    duration_minutes = Column(Integer, nullable=True, default=60)
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    min_age = Column(Integer, nullable=True)  # months
    max_age = Column(Integer, nullable=True)  # months
    is_active = Column(Boolean, nullable=False, default=True)


class ScheduleSlot(Base):
    __tablename__ = "schedule_slots"

    id = Column(Integer, primary_key=True, index=True)
    day_of_week = Column(Integer, nullable=False, index=True)  # 0=Sunday … 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=True)
    max_capacity = Column(Integer, default=1)
    is_active = Column(Boolean, nullable=False, default=True)


class Promotion(Base):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, default="")
    discount_type = Column(_enum(DiscountType), nullable=False)
    discount_value = Column(Money, nullable=False, default=0)
    min_age = Column(Integer, nullable=True)  # months, inclusive
    max_age = Column(Integer, nullable=True)  # months, inclusive
    applicable_service_ids = Column(JSON, nullable=False, default=list)  # [] = all services
    promo_code = Column(String(50), unique=True, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    subscription_code = Column(String(20), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    child_name = Column(String(120), nullable=False)
    child_age = Column(Integer, nullable=False)  # months
    weekly_schedule = Column(JSON, nullable=False, default=dict)  # {"2": slot_id, "4": slot_id, ...}
    sessions_per_month = Column(Integer, nullable=False, default=8)
    status = Column(_enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.pending, index=True)
    base_monthly_price = Column(Money, nullable=False, default=0)
    final_monthly_price = Column(Money, nullable=False, default=0)
    promotion_id = Column(Integer, ForeignKey("promotions.id", ondelete="SET NULL"), nullable=True)
    discount_amount = Column(Money, nullable=False, default=0)
    start_month = Column(Integer, nullable=False)
    start_year = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")
    service = relationship("Service")
    sessions = relationship("Session", back_populates="subscription", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="subscription", cascade="all, delete-orphan")


class Session(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False)
    session_date = Column(Date, nullable=False)
    session_time = Column(Time, nullable=False)
    session_number = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    status = Column(_enum(SessionStatus), nullable=False, default=SessionStatus.scheduled)
    original_date = Column(Date, nullable=True)  # kept on first reschedule
    original_time = Column(Time, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    subscription = relationship("Subscription", back_populates="sessions")

    __table_args__ = (UniqueConstraint("subscription_id", "session_date", name="uq_session_day"),)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(24), unique=True, nullable=False)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invoice_type = Column(_enum(InvoiceType), nullable=False, default=InvoiceType.monthly)
    billing_month = Column(Integer, nullable=True)
    billing_year = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=False)
    subtotal = Column(Money, nullable=False)
    tax_amount = Column(Money, nullable=False, default=0)
    total_amount = Column(Money, nullable=False)
    payment_status = Column(_enum(InvoicePaymentStatus), nullable=False, default=InvoicePaymentStatus.unpaid)
    paid_amount = Column(Money, nullable=False, default=0)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(32), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    subscription = relationship("Subscription", back_populates="invoices")
    user = relationship("User")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")
    payments = relationship("PaymentRecord", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("subscription_id", "billing_month", "billing_year", name="uq_invoice_period"),
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    service_name = Column(String(200), nullable=True)

    invoice = relationship("Invoice", back_populates="items")


class PaymentRecord(Base):
    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Money, nullable=False)
    payment_method = Column(String(32), nullable=False)
    payment_reference = Column(String(100), nullable=False)
    proof_path = Column(String(255), nullable=True)
    status = Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.pending)
    admin_notes = Column(Text, nullable=True)
    confirmed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    invoice = relationship("Invoice", back_populates="payments")

    # one payment "in flight" per invoice
    __table_args__ = (
        Index(
            "uq_payment_pending_per_invoice",
            "invoice_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(20), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    child_name = Column(String(120), nullable=False)
    child_age = Column(Integer, nullable=False)
    promotion_id = Column(Integer, ForeignKey("promotions.id", ondelete="SET NULL"), nullable=True)
    original_price = Column(Money, nullable=False, default=0)
    discount_amount = Column(Money, nullable=False, default=0)
    final_price = Column(Money, nullable=False, default=0)
    status = Column(_enum(BookingStatus), nullable=False, default=BookingStatus.pending)
    payment_status = Column(_enum(BookingPaymentStatus), nullable=False, default=BookingPaymentStatus.unpaid)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Helpful indexes
Index("ix_sessions_sub_number", Session.subscription_id, Session.session_number)
Index("ix_payments_invoice_status", PaymentRecord.invoice_id, PaymentRecord.status)
