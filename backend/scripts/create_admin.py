"""Create an admin user in the FundiPluss database.

Admins cannot sign up through the API, this is the only way to create one.

Usage:
    python scripts/create_admin.py admin@fundipluss.co.ke 'S3cure-Passw0rd'
"""

import asyncio
import sys

from sqlalchemy import select

from app.auth.service import hash_password
from app.database import async_session
from app.models.enums import UserRole
from app.models.user import User


async def create_admin(email: str, password: str) -> None:
    async with async_session() as db:
        result = await db.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none():
            print(f"Error: User with email '{email}' already exists.")
            sys.exit(1)

        user = User(
            email=email,
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            first_name="Admin",
            is_active=True,
        )
        db.add(user)
        await db.commit()

        print(f"Admin user created successfully: {email} (id={user.id})")


def main() -> None:
    if len(sys.argv) != 3:
        print("Usage: python scripts/create_admin.py <email> <password>")
        sys.exit(1)

    asyncio.run(create_admin(sys.argv[1], sys.argv[2]))


if __name__ == "__main__":
    main()
