"""
Read-only trip catalog: buses, routes, route stops and trips.

Catalog CRUD lives in another service. The booking core only reads these
rows to learn a trip's seat capacity, base price and stop distances.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from seatline.db.base import Base, TimestampMixin


class Bus(Base, TimestampMixin):
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, index=True)
    license_plate = Column(String(20), unique=True, nullable=False)
    bus_type = Column(String(100), nullable=True)
    # Nullable: a bus without a known capacity cannot be sold
    seat_count = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Bus(id={self.id}, plate={self.license_plate}, seats={self.seat_count})>"


class Route(Base, TimestampMixin):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    from_city = Column(String(255), nullable=True)
    to_city = Column(String(255), nullable=True)
    total_distance_km = Column(Float, nullable=True)
    estimated_duration_min = Column(Integer, nullable=True)

    stops = relationship(
        "RouteStop",
        back_populates="route",
        order_by="RouteStop.order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Route(id={self.id}, {self.from_city} -> {self.to_city})>"


class RouteStop(Base):
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    stop_name = Column(String(255), nullable=False)
    order = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False, default="both")  # pickup, dropoff, both
    km_from_start = Column(Float, nullable=True)

    route = relationship("Route", back_populates="stops")

    __table_args__ = (
        CheckConstraint("type IN ('pickup', 'dropoff', 'both')", name="check_route_stop_type"),
    )


class Trip(Base, TimestampMixin):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False)
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    base_price = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="scheduled")

    route = relationship("Route", lazy="selectin")
    bus = relationship("Bus", lazy="selectin")

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="check_trip_base_price_non_negative"),
        Index("ix_trips_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, route={self.route_id}, bus={self.bus_id})>"
