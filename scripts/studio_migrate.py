"""
Studio schema migration. Run with an admin DATABASE_URL.

Usage:
  python scripts/studio_migrate.py

Creates (idempotent):
  - studio schema
  - users, clients, projects, tasks, expenses, returns, contracts,
    project_files, password_resets, activity_events tables
"""
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import asyncpg

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    print("ERROR: DATABASE_URL not set")
    sys.exit(1)


STATEMENTS = [
    ("schema", "CREATE SCHEMA IF NOT EXISTS studio"),
    ("studio.clients", """
        CREATE TABLE IF NOT EXISTS studio.clients (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id           UUID,
            name              TEXT NOT NULL,
            email             TEXT NOT NULL,
            phone             TEXT NOT NULL DEFAULT '',
            status            TEXT NOT NULL DEFAULT 'inquiry'
                CHECK (status IN ('inquiry', 'consultation', 'contract', 'active', 'completed')),
            budget            NUMERIC(12, 2) NOT NULL DEFAULT 0,
            move_in_date      DATE,
            reveal_date       DATE,
            style_preferences TEXT[] NOT NULL DEFAULT '{}',
            notes             TEXT NOT NULL DEFAULT '',
            lead_source       TEXT NOT NULL DEFAULT '',
            address           TEXT,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.users", """
        CREATE TABLE IF NOT EXISTS studio.users (
            id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email         TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            full_name     TEXT NOT NULL DEFAULT '',
            role          TEXT NOT NULL
                CHECK (role IN ('business_owner', 'team_member', 'client')),
            client_id     UUID REFERENCES studio.clients(id) ON DELETE SET NULL,
            is_active     BOOLEAN NOT NULL DEFAULT true,
            last_login_at TIMESTAMPTZ,
            created_at    TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.projects", """
        CREATE TABLE IF NOT EXISTS studio.projects (
            id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            client_id           UUID NOT NULL REFERENCES studio.clients(id) ON DELETE CASCADE,
            name                TEXT NOT NULL,
            status              TEXT NOT NULL DEFAULT 'consultation'
                CHECK (status IN ('consultation', 'vision_board', 'ordering',
                                  'installation', 'styling', 'complete')),
            budget              NUMERIC(12, 2) NOT NULL DEFAULT 0,
            spent               NUMERIC(12, 2) NOT NULL DEFAULT 0,
            start_date          DATE,
            expected_completion DATE,
            description         TEXT NOT NULL DEFAULT '',
            rooms               TEXT[] NOT NULL DEFAULT '{}',
            progress            INT NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
            created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.tasks", """
        CREATE TABLE IF NOT EXISTS studio.tasks (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id        UUID REFERENCES studio.projects(id) ON DELETE CASCADE,
            client_id         UUID REFERENCES studio.clients(id) ON DELETE CASCADE,
            title             TEXT NOT NULL,
            description       TEXT NOT NULL DEFAULT '',
            status            TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'in_progress', 'completed')),
            priority          TEXT NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high')),
            due_date          DATE,
            assigned_to       UUID REFERENCES studio.users(id) ON DELETE SET NULL,
            category          TEXT NOT NULL DEFAULT 'administrative',
            visible_to_client BOOLEAN NOT NULL DEFAULT false,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.tasks index", "CREATE INDEX IF NOT EXISTS tasks_project_idx ON studio.tasks (project_id)"),
    ("studio.expenses", """
        CREATE TABLE IF NOT EXISTS studio.expenses (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id   UUID NOT NULL REFERENCES studio.projects(id) ON DELETE CASCADE,
            client_id    UUID REFERENCES studio.clients(id) ON DELETE CASCADE,
            title        TEXT NOT NULL,
            description  TEXT NOT NULL DEFAULT '',
            items        JSONB NOT NULL DEFAULT '[]'::jsonb,
            total_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
            expense_date DATE NOT NULL,
            category     TEXT NOT NULL DEFAULT 'other'
                CHECK (category IN ('materials', 'labor', 'transportation', 'permits', 'other')),
            receipt_key  TEXT,
            notes        TEXT NOT NULL DEFAULT '',
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.returns", """
        CREATE TABLE IF NOT EXISTS studio.returns (
            id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id     UUID NOT NULL REFERENCES studio.projects(id) ON DELETE CASCADE,
            client_id      UUID REFERENCES studio.clients(id) ON DELETE CASCADE,
            items          JSONB NOT NULL DEFAULT '[]'::jsonb,
            reason         TEXT NOT NULL,
            status         TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'processed', 'refunded', 'exchanged', 'completed')),
            amount         NUMERIC(12, 2),
            return_date    DATE NOT NULL,
            processed_date DATE,
            notes          TEXT NOT NULL DEFAULT '',
            created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.contracts", """
        CREATE TABLE IF NOT EXISTS studio.contracts (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            client_id   UUID NOT NULL REFERENCES studio.clients(id) ON DELETE CASCADE,
            project_id  UUID REFERENCES studio.projects(id) ON DELETE SET NULL,
            title       TEXT NOT NULL,
            type        TEXT NOT NULL DEFAULT 'proposal'
                CHECK (type IN ('proposal', 'design_contract', 'amendment', 'completion_certificate')),
            status      TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'viewed', 'signed', 'completed')),
            storage_key TEXT,
            file_name   TEXT,
            sent_at     TIMESTAMPTZ,
            viewed_at   TIMESTAMPTZ,
            signed_at   TIMESTAMPTZ,
            signed_by   TEXT,
            value       NUMERIC(12, 2),
            description TEXT NOT NULL DEFAULT '',
            version     INT NOT NULL DEFAULT 1,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.project_files", """
        CREATE TABLE IF NOT EXISTS studio.project_files (
            id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id     UUID NOT NULL REFERENCES studio.projects(id) ON DELETE CASCADE,
            client_id      UUID REFERENCES studio.clients(id) ON DELETE CASCADE,
            file_name      TEXT NOT NULL,
            storage_key    TEXT NOT NULL,
            mime_type      TEXT,
            size_bytes     BIGINT,
            room           TEXT,
            description    TEXT NOT NULL DEFAULT '',
            is_visionboard BOOLEAN NOT NULL DEFAULT false,
            scan_status    TEXT NOT NULL DEFAULT 'pending',
            uploaded_by    UUID REFERENCES studio.users(id) ON DELETE SET NULL,
            created_at     TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.password_resets", """
        CREATE TABLE IF NOT EXISTS studio.password_resets (
            id         UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id    UUID NOT NULL REFERENCES studio.users(id) ON DELETE CASCADE,
            token_hash TEXT NOT NULL UNIQUE,
            expires_at TIMESTAMPTZ NOT NULL,
            used_at    TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
    ("studio.activity_events", """
        CREATE TABLE IF NOT EXISTS studio.activity_events (
            id         BIGSERIAL PRIMARY KEY,
            actor_id   UUID REFERENCES studio.users(id) ON DELETE SET NULL,
            event_type TEXT NOT NULL,
            project_id UUID REFERENCES studio.projects(id) ON DELETE SET NULL,
            metadata   JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """),
]


async def migrate():
    conn = await asyncpg.connect(DATABASE_URL)
    try:
        print("Running studio migration...")
        for label, sql in STATEMENTS:
            await conn.execute(sql)
            print(f"OK {label}")
        print("\nMigration complete.")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(migrate())
