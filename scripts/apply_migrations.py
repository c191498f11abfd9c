"""Apply pending SQL migrations from ./migrations in filename order.

Applied versions (the filename prefix before the first underscore) are
recorded in `schema_migrations`, which the readiness check reads.
"""

from __future__ import annotations

import asyncio
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from warden.infra import postgres  # noqa: E402

MIGRATIONS_DIR = ROOT / "migrations"


async def apply_all() -> int:
    paths = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not paths:
        raise SystemExit("no migration files found")

    pool = await postgres.init_pool()
    applied_count = 0
    try:
        async with pool.acquire() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version TEXT PRIMARY KEY,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
            applied = {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}
            for path in paths:
                version = path.name.split("_", 1)[0]
                if version in applied:
                    continue
                async with conn.transaction():
                    await conn.execute(path.read_text())
                    await conn.execute(
                        "INSERT INTO schema_migrations (version) VALUES ($1) ON CONFLICT (version) DO NOTHING",
                        version,
                    )
                applied_count += 1
                print(f"Applied {path.name}")
    finally:
        await postgres.close_pool()
    return applied_count


if __name__ == "__main__":
    count = asyncio.run(apply_all())
    print(f"{count} migration(s) applied")
