import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add backend root to path to import libs
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from dotenv import load_dotenv

# Load env file selected for the run (defaults to .env when ENV_FILE not set)
# MUST be done before importing libs that use get_settings()
project_root = Path(__file__).resolve().parents[2]
env_file = os.environ.get("ENV_FILE", ".env")
load_dotenv(project_root / env_file, override=True)

from sqlalchemy import select

from libs.auth.roles import SystemRole
from libs.db.config import AsyncSessionLocal
from services.members_service.models import AccountStatus, Profile


async def create_admin_user(email: str, full_name: str) -> None:
    print("🚀 Starting super-admin creation")

    async with AsyncSessionLocal() as session:
        async with session.begin():
            result = await session.execute(select(Profile).where(Profile.email == email))
            profile = result.scalars().first()

            if profile:
                print(f"⚠️ Profile already exists for {email} (role={profile.role}).")
                if profile.role != SystemRole.SUPER_ADMIN.value:
                    profile.role = SystemRole.SUPER_ADMIN.value
                    print("✅ Promoted to super_admin.")
                if profile.status != AccountStatus.ACTIVE:
                    profile.status = AccountStatus.ACTIVE
                    print("✅ Account re-activated.")
                # A super-admin sits at the root of the org tree.
                profile.leader_id = None
            else:
                profile = Profile(
                    email=email,
                    full_name=full_name,
                    role=SystemRole.SUPER_ADMIN.value,
                    status=AccountStatus.ACTIVE,
                )
                session.add(profile)
                print("✅ Profile created.")

        await session.refresh(profile)

    print("\n🎉 Super-admin ready")
    print(f"Email: {email}")
    print(f"Profile id: {profile.id}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or promote a super-admin")
    parser.add_argument("email")
    parser.add_argument("--name", default="Super Admin", help="Full name for new profiles")
    args = parser.parse_args()
    asyncio.run(create_admin_user(args.email, args.name))


if __name__ == "__main__":
    main()
