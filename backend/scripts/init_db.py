"""
Create the logbook schema (tables + reporting views) and the first admin account.
Run from the repo root:  python backend/scripts/init_db.py --username admin --email admin@example.com

The password is read from ADMIN_PASSWORD or prompted for.
Production databases should be migrated with alembic instead (backend/app: alembic upgrade head).
"""
import argparse
import asyncio
import getpass
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "app"))

from sqlalchemy import select  # noqa: E402

from core.security import hash_password  # noqa: E402
from models import Base, User, UserRole, async_session, engine  # noqa: E402


async def main(username: str, email: str, full_name: str, password: str) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Schema ready")

    async with async_session() as session:
        existing = await session.execute(select(User).where(User.username == username))
        if existing.scalar_one_or_none():
            print(f"Admin '{username}' already exists, nothing to do")
        else:
            session.add(
                User(
                    username=username,
                    password_hash=hash_password(password),
                    full_name=full_name,
                    email=email,
                    role=UserRole.admin,
                )
            )
            await session.commit()
            print(f"Admin '{username}' created")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--username", default="admin")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--full-name", default="System Administrator")
    args = parser.parse_args()

    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    if not password:
        sys.exit("A password is required")
    asyncio.run(main(args.username, args.email, args.full_name, password))
