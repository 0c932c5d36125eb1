from datetime import datetime

from sqlalchemy import (
    DDL,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Table,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

OCCUPYING_STATUS_SQL = "('pending', 'confirmed', 'in_progress')"


class Businesses(Base):
    __tablename__ = 'businesses'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    currency = Column(Text, nullable=False, server_default=text("'usd'"))
    deposit_type = Column(Enum('none', 'fixed', 'percentage'), nullable=False, server_default=text("'none'"))
    deposit_value = Column(Float, nullable=False, server_default=text('0'))
    require_deposit_always = Column(Integer, nullable=False, server_default=text('0'))
    no_show_prevention_enabled = Column(Integer, nullable=False, server_default=text('1'))
    risk_threshold = Column(Integer, nullable=False, server_default=text('70'))
    high_risk_deposit_amount = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    staff = relationship('Staff', back_populates='business')
    services = relationship('Services', back_populates='business')
    customers = relationship('Customers', back_populates='business')
    bookings = relationship('Bookings', back_populates='business')


class Staff(Base):
    __tablename__ = 'staff'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    full_name = Column(Text, nullable=False)
    work_schedule = Column(Text, nullable=False, server_default=text("'{}'"))
    buffer_minutes = Column(Integer, nullable=False, server_default=text('0'))
    max_bookings_per_day = Column(Integer, nullable=False, server_default=text('20'))
    id = Column(Integer, primary_key=True)
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    business = relationship('Businesses', back_populates='staff')
    bookings = relationship('Bookings', back_populates='staff')


class Services(Base):
    __tablename__ = 'services'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration_min = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    id = Column(Integer, primary_key=True)
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    business = relationship('Businesses', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


t_staff_services = Table(
    'staff_services', metadata,
    Column('service_id', ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
    Column('staff_id', ForeignKey('staff.id', ondelete='CASCADE'), nullable=False),
    Column('is_active', Integer, nullable=False, server_default=text('1')),
    UniqueConstraint('service_id', 'staff_id')
)


class TimeOff(Base):
    __tablename__ = 'time_off'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'))  # NULL = whole business
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    id = Column(Integer, primary_key=True)
    reason = Column(Text)


class Customers(Base):
    __tablename__ = 'customers'
    __table_args__ = (
        UniqueConstraint('business_id', 'email'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    phone = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    business = relationship('Businesses', back_populates='customers')
    bookings = relationship('Bookings', back_populates='customer')


class Bookings(Base):
    __tablename__ = 'bookings'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'confirmed'"))
    payment_status = Column(Text, nullable=False, server_default=text("'unpaid'"))
    id = Column(Integer, primary_key=True)
    payment_authorization_id = Column(Text)
    captured_amount = Column(Float, nullable=False, server_default=text('0'))
    risk_score = Column(Integer)
    risk_factors = Column(Text, nullable=False, server_default=text("'[]'"))
    deposit_reason = Column(Text)
    cancel_reason = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    business = relationship('Businesses', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')
    staff = relationship('Staff', back_populates='bookings')
    customer = relationship('Customers', back_populates='bookings')


class BookingAttempts(Base):
    __tablename__ = 'booking_attempts'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='CASCADE'))
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    state = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    authorization_id = Column(Text, unique=True)
    deposit_amount = Column(Float, nullable=False, server_default=text('0'))
    deposit_reason = Column(Text)
    risk_score = Column(Integer)
    risk_factors = Column(Text, nullable=False, server_default=text("'[]'"))
    expires_at = Column(DateTime)
    booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))
    failure_reason = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    booking = relationship('Bookings')


class WaitlistEntries(Base):
    __tablename__ = 'waitlist_entries'
    __table_args__ = (
        UniqueConstraint('business_id', 'service_id', 'customer_email', 'date'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)  # YYYY-MM-DD
    preferred_time_range = Column(
        Enum('any', 'morning', 'afternoon', 'evening'), nullable=False, server_default=text("'any'")
    )
    customer_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    notified_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


# Store-level serialization point: no two occupying bookings of one staff
# member may overlap. Violations surface as IntegrityError.
_no_overlap_insert = DDL(f"""
CREATE TRIGGER IF NOT EXISTS bookings_no_overlap_per_staff
BEFORE INSERT ON bookings
WHEN NEW.status IN {OCCUPYING_STATUS_SQL}
BEGIN
    SELECT RAISE(ABORT, 'bookings_no_overlap_per_staff')
    WHERE EXISTS (
        SELECT 1 FROM bookings
        WHERE staff_id = NEW.staff_id
          AND status IN {OCCUPYING_STATUS_SQL}
          AND start_at < NEW.end_at
          AND end_at > NEW.start_at
    );
END
""")

_no_overlap_update = DDL(f"""
CREATE TRIGGER IF NOT EXISTS bookings_no_overlap_per_staff_update
BEFORE UPDATE OF status, start_at, end_at, staff_id ON bookings
WHEN NEW.status IN {OCCUPYING_STATUS_SQL}
BEGIN
    SELECT RAISE(ABORT, 'bookings_no_overlap_per_staff')
    WHERE EXISTS (
        SELECT 1 FROM bookings
        WHERE staff_id = NEW.staff_id
          AND id != NEW.id
          AND status IN {OCCUPYING_STATUS_SQL}
          AND start_at < NEW.end_at
          AND end_at > NEW.start_at
    );
END
""")

event.listen(Bookings.__table__, "after_create", _no_overlap_insert)
event.listen(Bookings.__table__, "after_create", _no_overlap_update)
