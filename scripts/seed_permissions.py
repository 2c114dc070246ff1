"""
Seed script writing the default permission documents.

Run after database initialization on a fresh install so the stored
permissions start from the built-in defaults. Documents that already exist
are left alone unless --force is given.

Usage:
    uv run python -m scripts.seed_permissions [--force]
"""
import argparse
import asyncio
from typing import List

from rolegate.core.database.engine import AsyncSessionLocal, init_db
from rolegate.features.permissions.defaults import default_matrix
from rolegate.features.permissions.repository import DatabasePermissionSource, PermissionSource
from rolegate.features.permissions.schemas import ResourceKind
from rolegate.utils import get_logger


log = get_logger(__name__)


async def seed_permissions(source: PermissionSource, force: bool = False) -> List[ResourceKind]:
    """
    Write the default matrix for every kind whose document is missing.

    Returns:
        The kinds that were written
    """
    existing = await source.fetch_permissions()
    written = []
    for kind in ResourceKind:
        if existing.matrix(kind) is not None and not force:
            log.debug(f"Matrix '{kind.document_key}' already exists, skipping")
            continue
        await source.write_matrix(default_matrix(kind))
        written.append(kind)
        log.info(f"Seeded {kind.document_key}")

    if existing.custom_roles is None or force:
        await source.write_custom_roles([])
        log.info("Seeded empty custom role list")

    log.info(f"Seeded {len(written)} permission matrices")
    return written


async def main(force: bool = False):
    """Initialize tables and seed the default permissions."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    source = DatabasePermissionSource(AsyncSessionLocal)
    try:
        await seed_permissions(source, force=force)
    except Exception as e:
        log.error(f"Error seeding permissions: {e}", exc_info=True)
        raise
    log.info("Permission seeding completed successfully!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--force", action="store_true", help="overwrite existing documents")
    args = parser.parse_args()
    asyncio.run(main(force=args.force))
