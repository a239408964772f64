"""Seed script — populates the credential store with sample accounts for testing."""

import asyncio

from auth_gateway.config import settings
from auth_gateway.database.engine import create_engine, create_session_factory, init_db
from auth_gateway.database.repository import AccountRepository
from auth_gateway.errors import UserAlreadyExists
from auth_gateway.models.records import AccountSnapshot
from auth_gateway.services.passwords import hash_password

SAMPLE_ACCOUNTS = [
    {"email": "alice@example.com", "password": "alice-secret"},
    {"email": "bob@example.com", "mobile_number": "+919876543210", "password": "bob-secret"},
    {"mobile_number": "+919812345678"},
]


async def seed() -> None:
    """Insert sample accounts into the database."""
    engine = create_engine(settings)
    await init_db(engine)
    repo = AccountRepository(create_session_factory(engine))

    created = 0
    for sample in SAMPLE_ACCOUNTS:
        password = sample.get("password")
        candidate = AccountSnapshot(
            email=sample.get("email"),
            mobile_number=sample.get("mobile_number"),
            password_hash=await hash_password(password) if password else None,
        )
        try:
            await repo.create(candidate)
            created += 1
        except UserAlreadyExists:
            print(f"• {candidate.email or candidate.mobile_number} already present, skipped")

    await engine.dispose()
    print(f"✅ Seeded {created} accounts into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
