"""
Studio seed script. Run after scripts/studio_migrate.py.

Usage:
  python scripts/studio_seed.py --email owner@studio.example --password MyPassword123

Options:
  --email     Business owner email (required)
  --password  Business owner password (required)
  --test      Also seed a test client + project with a few tasks
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Load .env so we pick up DATABASE_URL
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import asyncpg

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    print("ERROR: DATABASE_URL not set")
    sys.exit(1)

# Import password hasher and progress engine from the platform
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
from studio.engine.progress import calculate_project_progress
from studio.portal.auth import BUSINESS_OWNER, hash_password

TEST_TASKS = [
    ("Initial walkthrough", "consultation", "completed"),
    ("Mood board draft", "design", "completed"),
    ("Living room vision board", "design", "in_progress"),
    ("Order sofa and rug", "ordering", "pending"),
]


async def seed(email: str, password: str, with_test_data: bool):
    conn = await asyncpg.connect(DATABASE_URL)
    try:
        # ---------------------------------------------------------------
        # 1. Create or update the business owner
        # ---------------------------------------------------------------
        email_lower = email.lower().strip()
        pw_hash = hash_password(password)

        existing = await conn.fetchrow("SELECT id FROM studio.users WHERE email = $1", email_lower)
        if existing:
            await conn.execute(
                "UPDATE studio.users SET password_hash = $1, is_active = true WHERE id = $2",
                pw_hash,
                existing["id"],
            )
            print(f"OK Updated owner: {email_lower} (password reset)")
        else:
            owner_id = await conn.fetchval(
                """
                INSERT INTO studio.users (email, password_hash, full_name, role, is_active)
                VALUES ($1, $2, $3, $4, true)
                RETURNING id
                """,
                email_lower,
                pw_hash,
                email_lower.split("@")[0].title(),
                BUSINESS_OWNER,
            )
            print(f"OK Created owner: {email_lower} (id: {owner_id})")

        # ---------------------------------------------------------------
        # 2. Optional test data
        # ---------------------------------------------------------------
        if with_test_data:
            client_id = await conn.fetchval(
                "SELECT id FROM studio.clients WHERE email = 'test@example.com'"
            )
            if not client_id:
                client_id = await conn.fetchval(
                    """
                    INSERT INTO studio.clients (name, email, status, budget, lead_source)
                    VALUES ('Test Client', 'test@example.com', 'active', 25000, 'seed')
                    RETURNING id
                    """
                )

            status = "vision_board"
            progress = calculate_project_progress(
                status, [{"category": c, "status": s} for _, c, s in TEST_TASKS]
            )
            project_id = await conn.fetchval(
                """
                INSERT INTO studio.projects (client_id, name, status, budget, rooms, progress)
                VALUES ($1, 'Test Living Room', $2, 25000, ARRAY['living room'], $3)
                RETURNING id
                """,
                client_id,
                status,
                progress,
            )
            for title, category, task_status in TEST_TASKS:
                await conn.execute(
                    """
                    INSERT INTO studio.tasks (project_id, client_id, title, category, status, visible_to_client)
                    VALUES ($1, $2, $3, $4, $5, true)
                    """,
                    project_id,
                    client_id,
                    title,
                    category,
                    task_status,
                )

            print(f"OK Created test client + project ({project_id}) with {len(TEST_TASKS)} tasks, progress {progress}%")

        print("\nDone. Login via POST /api/auth/login")

    finally:
        await conn.close()


def main():
    parser = argparse.ArgumentParser(description="Seed the studio platform")
    parser.add_argument("--email", required=True, help="Business owner email")
    parser.add_argument("--password", required=True, help="Business owner password")
    parser.add_argument("--test", action="store_true", help="Also seed test client + project")
    args = parser.parse_args()
    asyncio.run(seed(args.email, args.password, args.test))


if __name__ == "__main__":
    main()
