"""
Script to create the first ADMIN user with a password.

    python -m gtcflow.scripts.create_local_admin --email admin@gtc.local --password ...
"""

import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.database import get_session_context
from gtcflow.core.tokens import hash_password
from gtcflow.models.user import User
from gtcflow.schemas.common import Role


async def upsert_admin(
    session: AsyncSession, email: str, password: str, name: str = "Admin", reset_password: bool = False
) -> tuple[User, bool]:
    """Create the admin if the email is free. Returns (user, created).

    An existing user keeps its data unless `reset_password` is set, in which
    case it gets the new password and the ADMIN role.
    """
    email = email.strip().lower()
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            email=email,
            name=name,
            role=Role.ADMIN.value,
            password_hash=hash_password(password),
        )
        session.add(user)
        await session.flush()
        return user, True

    if reset_password:
        user.password_hash = hash_password(password)
        user.role = Role.ADMIN.value
        session.add(user)
        await session.flush()
    return user, False


async def create_admin(email: str, password: str, name: str, reset_password: bool) -> None:
    async with get_session_context() as session:
        user, created = await upsert_admin(session, email, password, name, reset_password)

    if created:
        print(f"Created admin: {user.email}")
    elif reset_password:
        print(f"Reset password and role for {user.email}.")
    else:
        print(f"User {user.email} already exists.")
    print("Done.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a local admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--name", default="Admin", help="Display name")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password of an existing user and make it an admin",
    )

    args = parser.parse_args()
    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    asyncio.run(create_admin(args.email, args.password, args.name, args.reset_password))


if __name__ == "__main__":
    main()
