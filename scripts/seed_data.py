"""Seed a demo veterinarian, client, secretary and patient.

Prints a bearer token for each user so the API can be exercised locally.
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

from sqlalchemy import insert

from vetclinic.core.security import create_access_token
from vetclinic.core.timeutils import utcnow
from vetclinic.database import AsyncSessionLocal, engine
from vetclinic.models.patients import patients
from vetclinic.models.users import users


async def seed() -> None:
    """Insert demo records and print their IDs and tokens."""
    now = utcnow()
    veterinarian_id, client_id, secretary_id, patient_id = uuid4(), uuid4(), uuid4(), uuid4()

    demo_users = [
        {
            "id": veterinarian_id,
            "role": "veterinarian",
            "first_name": "Ana",
            "last_name": "Torres",
            "email": "ana.torres@vetclinic.local",
            "specialty": "General practice",
            "license_number": f"VET-{veterinarian_id.hex[:8].upper()}",
        },
        {
            "id": client_id,
            "role": "client",
            "first_name": "Luis",
            "last_name": "Gomez",
            "email": "luis.gomez@example.com",
            "phone": "+34600000000",
        },
        {
            "id": secretary_id,
            "role": "secretary",
            "first_name": "Marta",
            "last_name": "Ruiz",
            "email": "front.desk@vetclinic.local",
        },
    ]

    async with AsyncSessionLocal() as session:
        for user in demo_users:
            await session.execute(
                insert(users).values(**user, is_active=True, created_at=now, updated_at=now)
            )
        await session.execute(
            insert(patients).values(
                id=patient_id,
                owner_id=client_id,
                name="Rocky",
                species="dog",
                breed="Beagle",
                created_at=now,
                updated_at=now,
            )
        )
        await session.commit()

    await engine.dispose()

    print(f"patient_id: {patient_id}")
    for user in demo_users:
        token = create_access_token({"sub": str(user["id"])}, expires_delta=timedelta(days=7))
        print(f"{user['role']}: id={user['id']}")
        print(f"  token: {token}")


if __name__ == "__main__":
    asyncio.run(seed())
