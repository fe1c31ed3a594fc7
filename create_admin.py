import argparse
import asyncio

from app.infrastructure.database import AsyncSessionLocal, init_db
from app.domain.identity.models import UserRole
from app.domain.identity.repository import UserRepository


async def create_user(email: str, password: str, role: UserRole, lab_id=None):
    await init_db()

    async with AsyncSessionLocal() as db:
        repo = UserRepository(db)
        existing = await repo.get_by_email(email)
        if existing:
            print(f"User already exists: {existing.email} ({existing.role.value})")
            return existing

        user = await repo.create(
            {
                "email": email.lower(),
                "first_name": "Admin" if role == UserRole.ADMIN else "Lab",
                "last_name": "User",
                "role": role,
                "assigned_lab_id": lab_id,
            },
            password=password,
        )
        print(f"Created {role.value} {user.email} (id {user.id})")
        return user


def main():
    parser = argparse.ArgumentParser(description="Create an admin or lab-scoped account")
    parser.add_argument("--email", default="admin@labmate.com")
    parser.add_argument("--password", required=True)
    parser.add_argument("--role", default=UserRole.ADMIN.value, choices=[role.value for role in UserRole])
    parser.add_argument("--lab-id", help="assigned lab for staff, technicians and local admins")
    args = parser.parse_args()

    role = UserRole(args.role)
    if role not in (UserRole.ADMIN, UserRole.USER) and not args.lab_id:
        parser.error(f"--lab-id is required for role {role.value}")

    asyncio.run(create_user(args.email, args.password, role, args.lab_id))


if __name__ == "__main__":
    main()
