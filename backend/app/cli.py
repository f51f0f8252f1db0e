"""Management CLI.

Usage:
    python -m app.cli init-db               # Create every table (dev only; use Alembic in prod)
    python -m app.cli expire-invitations    # Run the invitation sweep now
    python -m app.cli issue-token <email>   # Print an access token for a profile
"""

import asyncio
import sys

from sqlalchemy import select

from app.auth.jwt import create_access_token
from app.database import Base, async_session, engine
from app.models import Profile
from app.services.scheduler import run_invitation_sweep


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created.")


async def expire_invitations():
    expired = await run_invitation_sweep()
    print(f"{expired} invitation(s) expired")


async def issue_token(email: str):
    async with async_session() as db:
        result = await db.execute(select(Profile).where(Profile.email == email.lower()))
        profile = result.scalar_one_or_none()
    if not profile:
        print(f"No profile for {email}")
        sys.exit(1)
    print(create_access_token(profile.id, role=profile.role))


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "init-db":
        asyncio.run(init_db())
    elif cmd == "expire-invitations":
        asyncio.run(expire_invitations())
    elif cmd == "issue-token" and len(sys.argv) > 2:
        asyncio.run(issue_token(sys.argv[2]))
    else:
        print("Usage: python -m app.cli [init-db|expire-invitations|issue-token <email>]")
