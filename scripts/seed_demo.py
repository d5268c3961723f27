#!/usr/bin/env python3
"""
Seed script to create a demo EVSE with connectors and QR rates
"""

import asyncio
from decimal import Decimal


async def seed_demo_data():
    """Seed demo data for development"""
    from app.database import SessionLocal, engine, Base
    from app.models.evse import EVSE, Connector, EVSEQRRate

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo EVSE already exists
        existing = await db.get(EVSE, "PNC-DEMO-0001")

        if existing:
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo EVSE...")

        evse = EVSE(
            uid="PNC-DEMO-0001",
            qr_code=1001,
            location_id=1,
            model="AC Wallbox 22",
            vendor="ParkNcharge",
            status="AVAILABLE",
        )
        db.add(evse)
        await db.flush()

        connectors = [
            Connector(
                evse_uid=evse.uid,
                connector_id="1",
                standard="IEC_62196_T2",
                power_type="AC_3_PHASE",
                max_power=22000,
            ),
            Connector(
                evse_uid=evse.uid,
                connector_id="2",
                standard="IEC_62196_T2_COMBO",
                power_type="DC",
                max_power=50000,
            ),
        ]
        for connector in connectors:
            db.add(connector)

        rates = [
            ("30 minutes", 30, Decimal("75.00")),
            ("1 hour", 60, Decimal("140.00")),
            ("2 hours", 120, Decimal("260.00")),
        ]
        for label, charge_mins, price in rates:
            db.add(EVSEQRRate(evse_uid=evse.uid, label=label, charge_mins=charge_mins, price=price))

        await db.commit()

        print(f"""
Demo data created successfully!

EVSE: {evse.uid}
  QR code: QR-{evse.qr_code}
  Location: {evse.location_id}

Connectors: {len(connectors)} created
QR rates: {len(rates)} created
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
