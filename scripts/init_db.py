"""
Database initialization script.

Creates the gateway tables and optionally adds preset model configurations.
"""
import asyncio
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import inspect, select

from aiproxy.core.database import engine, init_db, drop_db, AsyncSessionLocal
from aiproxy.core.config import settings
from aiproxy.core.logger import get_logger
from aiproxy.models import ModelConfig, MODEL_PRESETS

logger = get_logger(__name__)


async def check_tables_exist():
    """Return the names of existing tables."""
    async with engine.begin() as conn:
        def _check(connection):
            inspector = inspect(connection)
            return inspector.get_table_names()

        tables = await conn.run_sync(_check)
        return tables


async def create_tables():
    """Create all gateway tables."""
    logger.info("Creating database tables...")

    try:
        await init_db()
        new_tables = await check_tables_exist()
        logger.info(f"Tables after creation: {new_tables}")
        return True

    except Exception as e:
        logger.error(f"Failed to create tables: {str(e)}", exc_info=True)
        return False


async def add_presets(api_keys: dict) -> int:
    """
    Add preset model configurations for which an API key was given.

    Args:
        api_keys: Mapping of preset model id to API key

    Returns:
        Number of configurations added
    """
    added = 0
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(ModelConfig.model_id))
        existing = set(result.scalars().all())

        for preset in MODEL_PRESETS:
            api_key = api_keys.get(preset.model_id)
            if not api_key:
                continue
            if preset.model_id in existing:
                logger.info(f"Skipping existing model: {preset.model_id}")
                continue
            session.add(preset.create(api_key=api_key))
            added += 1

        await session.commit()

    logger.info(f"Added {added} preset models")
    return added


def parse_preset_keys(values):
    """Parse ``model_id=api_key`` arguments."""
    keys = {}
    for value in values or []:
        model_id, sep, api_key = value.partition("=")
        if not sep or not model_id or not api_key:
            raise ValueError(f"Expected MODEL_ID=API_KEY, got: {value}")
        keys[model_id] = api_key
    return keys


async def main():
    """Entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Gateway database tool")
    parser.add_argument(
        "action",
        choices=["init", "reset", "check", "presets"],
        help="init=create tables, reset=drop and recreate, check=list tables, presets=add preset models"
    )
    parser.add_argument(
        "--key",
        action="append",
        metavar="MODEL_ID=API_KEY",
        help="API key for a preset model (repeatable, used by 'presets')"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the confirmation prompt for reset"
    )

    args = parser.parse_args()

    logger.info(f"Database: {settings.database_url}")
    logger.info(f"Action: {args.action}")

    if args.action == "check":
        tables = await check_tables_exist()
        print(f"\nTables in database ({len(tables)}):")
        for table in tables:
            print(f"  - {table}")
        print()

    elif args.action == "init":
        if await create_tables():
            print("\nDatabase tables created")
        else:
            print("\nFailed to create database tables")
            sys.exit(1)

    elif args.action == "reset":
        if not args.force:
            print("\nWarning: this deletes all model configs and logs!")
            confirm = input("Reset the database? (type 'yes' to confirm): ")
            if confirm.lower() != "yes":
                print("Cancelled")
                return

        await drop_db()
        if await create_tables():
            print("\nDatabase reset")
        else:
            print("\nFailed to reset database")
            sys.exit(1)

    elif args.action == "presets":
        try:
            api_keys = parse_preset_keys(args.key)
        except ValueError as e:
            parser.error(str(e))

        if not api_keys:
            print("\nAvailable presets:")
            for preset in MODEL_PRESETS:
                print(f"  - {preset.model_id:<24} {preset.name} ({preset.provider_type.display_name})")
            print("\nPass --key MODEL_ID=API_KEY to add one")
            return

        await create_tables()
        added = await add_presets(api_keys)
        print(f"\nAdded {added} preset models")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nCancelled")
    except Exception as e:
        logger.error(f"Failed: {str(e)}", exc_info=True)
        sys.exit(1)
