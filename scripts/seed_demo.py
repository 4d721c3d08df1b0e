"""
Seed a demo filing: a DRAFT application for company ``demo-co`` with the
first two sections filled and completed.
Run: python -m scripts.seed_demo (from the project root).
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from database import AsyncSessionLocal, init_db
from models import Application
from schemas.enums import Priority, Role
from services import application_store as store
from services import section_tracker
from services.access_control import ActorContext

DEMO_ISSUER = ActorContext(user_id="demo-issuer", role=Role.ISSUER, company_id="demo-co")

DEMO_SECTIONS = {
    1: {
        "companyName": "Demo Manufacturing Plc",
        "legalForm": "Public Limited Company",
        "registrationNumber": "RC-2019-00417",
        "incorporationDate": "2019-03-14",
        "registeredAddress": {"city": "Kigali", "street": "KN 5 Rd"},
    },
    2: {
        "authorizedShareCapital": 5_000_000_000,
        "paidUpCapital": 3_200_000_000,
        "netAssets": 4_100_000_000,
        "auditedStatements": ["FY2022", "FY2023", "FY2024"],
    },
}


async def seed():
    await init_db()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(Application).where(Application.company_id == DEMO_ISSUER.company_id))
        if existing.scalars().first():
            print(f"Demo application for {DEMO_ISSUER.company_id} already exists, skipping")
            return
        app = await store.create_application(
            session, DEMO_ISSUER, target_amount=2_000_000_000, priority=Priority.HIGH
        )
        for number, fields in DEMO_SECTIONS.items():
            section = await store.get_section(session, app.id, number)
            for path, value in fields.items():
                await section_tracker.update_field(session, section.id, path, value, DEMO_ISSUER)
            await section_tracker.complete_section(session, section.id, DEMO_ISSUER)
            print(f"Seeded section {number}: {section.title}")
        await session.commit()
        print(f"Seeded application {app.id}")
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
