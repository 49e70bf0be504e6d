"""Apply pending SQL migrations from backend/infra/migrations in version order."""

from __future__ import annotations

import asyncio
import logging
import pathlib

import asyncpg

from floatr.obs.logging import configure_logging
from floatr.settings import settings

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent / "infra" / "migrations"

logger = logging.getLogger("floatr.migrations")


async def _connect(retries: int = 30, delay: float = 2.0) -> asyncpg.Connection:
    for attempt in range(1, retries + 1):
        try:
            return await asyncpg.connect(
                dsn=settings.postgres_url,
                ssl="require" if settings.postgres_ssl else "disable",
            )
        except (OSError, asyncpg.CannotConnectNowError):
            logger.warning("database not ready, retrying", extra={"attempt": attempt, "delay_s": delay})
            await asyncio.sleep(delay)
    raise SystemExit("Could not connect to database after multiple retries")


async def apply_pending() -> list[str]:
    paths = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not paths:
        raise SystemExit("no migration files found")
    conn = await _connect()
    applied_now: list[str] = []
    try:
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
                    """
                    INSERT INTO schema_migrations (version)
                    VALUES ($1)
                    ON CONFLICT (version) DO UPDATE SET applied_at = NOW()
                    """,
                    version,
                )
            logger.info("migration applied", extra={"migration": path.name})
            applied_now.append(version)
    finally:
        await conn.close()
    return applied_now


def main() -> None:
    configure_logging()
    asyncio.run(apply_pending())


if __name__ == "__main__":
    main()
