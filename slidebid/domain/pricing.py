"""
Price estimation
================

Formula
-------
Price = ceil( max(Distance x Rate_Per_KM, Minimum_Fare) / Unit ) x Unit

* ``Rate_Per_KM`` and ``Minimum_Fare`` come from a per-vehicle-type fare
  table; unknown types are priced as the default type (``standard``).
* ``Unit`` is the currency rounding unit (10 THB by default), always
  rounding **up**.
* A non-positive distance means the distance is unknown and yields ``0``.

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Union

from .distance import DEFAULT_AVG_SPEED_KMH, distance, travel_time
from .entities import Location, TripEstimate
from .enums import VehicleType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FareRate:
    rate_per_km: float
    minimum_fare: float


DEFAULT_FARE_TABLE: dict[str, FareRate] = {
    "standard": FareRate(20.0, 100.0),
    "heavy_duty": FareRate(30.0, 150.0),
    "luxury": FareRate(40.0, 200.0),
    "emergency": FareRate(35.0, 250.0),
}

VehicleKey = Union[VehicleType, int, str, None]


class PricingEngine:
    """High-level API used by the negotiation engine and the API layer."""

    def __init__(
        self,
        fare_table: Mapping[str, FareRate] | None = None,
        default_type: str = "standard",
        rounding_unit: int = 10,
        avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
    ):
        self.fare_table = dict(fare_table or DEFAULT_FARE_TABLE)
        if default_type not in self.fare_table:
            raise ValueError(f"Default vehicle type {default_type!r} has no fare")
        self.default_type = default_type
        self.rounding_unit = rounding_unit
        self.avg_speed_kmh = avg_speed_kmh

    @classmethod
    def from_settings(cls, settings) -> "PricingEngine":
        table = {
            name: FareRate(rate, minimum)
            for name, (rate, minimum) in settings.fare_table.items()
        }
        return cls(
            table,
            default_type=settings.default_vehicle_type,
            rounding_unit=settings.fare_rounding_unit,
            avg_speed_kmh=settings.average_speed_kmh,
        )

    def fare_key(self, vehicle_type: VehicleKey) -> str:
        """Resolve a vehicle type id, enum or name to a fare-table key."""
        if isinstance(vehicle_type, VehicleType):
            key = vehicle_type.fare_key
        elif isinstance(vehicle_type, int) and not isinstance(vehicle_type, bool):
            try:
                key = VehicleType(vehicle_type).fare_key
            except ValueError:
                key = None
        elif isinstance(vehicle_type, str):
            key = vehicle_type.strip().lower()
        else:
            key = None

        if key not in self.fare_table:
            logger.warning(
                "Unknown vehicle type %r, pricing as %s", vehicle_type, self.default_type
            )
            return self.default_type
        return key

    def rate_for(self, vehicle_type: VehicleKey) -> FareRate:
        return self.fare_table[self.fare_key(vehicle_type)]

    def price_estimate(self, distance_km: float, vehicle_type: VehicleKey) -> float:
        if not distance_km or distance_km <= 0:
            return 0
        rate = self.rate_for(vehicle_type)
        fare = max(distance_km * rate.rate_per_km, rate.minimum_fare)
        unit = self.rounding_unit
        return math.ceil(fare / unit) * unit

    def estimate_trip(
        self, pickup: Location, dropoff: Location, vehicle_type: VehicleKey
    ) -> TripEstimate:
        km = distance(
            pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
        )
        return TripEstimate(
            distance_km=km,
            travel_time_minutes=travel_time(km, self.avg_speed_kmh),
            price=self.price_estimate(km, vehicle_type),
        )


def price_estimate(distance_km: float, vehicle_type: VehicleKey = "standard") -> float:
    """Module-level shortcut using the default fare table."""
    return PricingEngine().price_estimate(distance_km, vehicle_type)
