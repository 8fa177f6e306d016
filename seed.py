"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 sample customers
  - 7 sample drivers (5 approved, 1 pending review, 1 rejected)
  - 4 sample pending requests around central Bangkok
  - 2 sample offers on the first request
"""

import asyncio

from sqlalchemy import text

from slidebid.config import settings
from slidebid.domain.enums import ApprovalStatus, OfferStatus, RequestStatus, VehicleType
from slidebid.domain.spatial import pickup_cell
from slidebid.infrastructure.database import async_session_factory, engine
from slidebid.infrastructure.models import (
    CustomerModel,
    DriverModel,
    OfferModel,
    RequestModel,
)

CUSTOMERS = [
    {"name": "Somchai Rattanakul", "phone": "0812345678", "email": "somchai@example.com"},
    {"name": "Malee Srisuk", "phone": "0823456789", "email": "malee@example.com"},
    {"name": "Niran Chaiyaporn", "phone": "0834567890", "email": "niran@example.com"},
    {"name": "Ploy Wongsawat", "phone": "0845678901", "email": "ploy@example.com"},
]

DRIVERS = [
    {"name": "Anan Boonmee", "plate": "1กข 1234", "type": VehicleType.STANDARD,
     "status": ApprovalStatus.APPROVED, "lat": 13.7460, "lon": 100.5340},
    {"name": "Kittisak Panya", "plate": "2คง 5678", "type": VehicleType.STANDARD,
     "status": ApprovalStatus.APPROVED, "lat": 13.7300, "lon": 100.5230},
    {"name": "Wichai Thongdee", "plate": "3จฉ 9012", "type": VehicleType.HEAVY_DUTY,
     "status": ApprovalStatus.APPROVED, "lat": 13.7650, "lon": 100.5380},
    {"name": "Sompong Kaewmala", "plate": "4ชซ 3456", "type": VehicleType.LUXURY,
     "status": ApprovalStatus.APPROVED, "lat": 13.7200, "lon": 100.5600},
    {"name": "Prasert Inthong", "plate": "5ญฎ 7890", "type": VehicleType.STANDARD,
     "status": ApprovalStatus.APPROVED, "lat": 13.7563, "lon": 100.5018},
    {"name": "Decha Saelim", "plate": "6ฐฑ 2345", "type": VehicleType.EMERGENCY,
     "status": ApprovalStatus.PENDING, "lat": None, "lon": None},
    {"name": "Boonchu Meechai", "plate": "7ฒณ 6789", "type": VehicleType.STANDARD,
     "status": ApprovalStatus.REJECTED, "lat": None, "lon": None},
]

REQUESTS = [
    # (pickup, pickup address, dropoff, dropoff address, vehicle type)
    ((13.7563, 100.5018), "Democracy Monument, Bangkok",
     (13.7469, 100.5349), "Siam Paragon, Bangkok", VehicleType.STANDARD),
    ((13.7246, 100.5290), "Lumphini Park, Bangkok",
     (13.6900, 100.7501), "Suvarnabhumi Airport", VehicleType.STANDARD),
    ((13.8000, 100.5500), "Chatuchak Market, Bangkok",
     (13.7380, 100.5600), "Asok Intersection, Bangkok", VehicleType.HEAVY_DUTY),
    ((13.7279, 100.5241), "Silom Road, Bangkok",
     (13.7650, 100.5380), "Victory Monument, Bangkok", VehicleType.LUXURY),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM customers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Customers ─────────────────────────────────────────────────
        customers = [CustomerModel(**c) for c in CUSTOMERS]
        session.add_all(customers)
        await session.flush()
        print(f"  Created {len(customers)} customers")

        # ── Drivers ───────────────────────────────────────────────────
        drivers = [
            DriverModel(
                name=d["name"],
                license_plate=d["plate"],
                vehicle_type=int(d["type"]),
                approval_status=d["status"],
                current_lat=d["lat"],
                current_lon=d["lon"],
            )
            for d in DRIVERS
        ]
        session.add_all(drivers)
        await session.flush()
        print(f"  Created {len(drivers)} drivers")

        # ── Requests ──────────────────────────────────────────────────
        requests = []
        for i, (pickup, pickup_addr, dropoff, dropoff_addr, vtype) in enumerate(REQUESTS):
            requests.append(
                RequestModel(
                    customer_id=customers[i % len(customers)].id,
                    pickup_lat=pickup[0],
                    pickup_lon=pickup[1],
                    pickup_address=pickup_addr,
                    pickup_h3=pickup_cell(pickup[0], pickup[1], settings.h3_resolution),
                    dropoff_lat=dropoff[0],
                    dropoff_lon=dropoff[1],
                    dropoff_address=dropoff_addr,
                    vehicle_type=int(vtype),
                    status=RequestStatus.PENDING,
                )
            )
        session.add_all(requests)
        await session.flush()
        print(f"  Created {len(requests)} requests")

        # ── Offers ────────────────────────────────────────────────────
        offers = [
            OfferModel(request_id=requests[0].id, driver_id=drivers[0].id,
                       offered_price=300.0, status=OfferStatus.PENDING),
            OfferModel(request_id=requests[0].id, driver_id=drivers[1].id,
                       offered_price=280.0, status=OfferStatus.PENDING),
        ]
        session.add_all(offers)
        await session.flush()
        print(f"  Created {len(offers)} offers")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
