import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Type, List

from pydantic import BaseModel, ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Run from the project root after `pip install -e .`:
#   python scripts/seed_initial_data.py
from haggle.core.config import settings
from haggle.models import MembershipPlan  # Used for idempotency check
from haggle.system.membership.plan_manager import PlanManager
from haggle.schemas.membership.membership_schemas import PlanCreate

# --- Setup Logging ---
logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Data Loading and Validation Helper ---
SEED_DATA_DIR = Path(__file__).resolve().parent.parent / "seed_data"

def _load_and_validate_data(file_name: str, schema: Type[BaseModel]) -> List[BaseModel]:
    """
    Helper to load, parse, and validate data from a JSON file.
    """
    path = SEED_DATA_DIR / file_name
    if not path.exists():
        logger.error(f"Seed data file not found: {path}")
        raise FileNotFoundError(f"Seed data file not found: {path}")

    logger.info(f"  - Loading and validating {file_name}...")
    data = json.loads(path.read_text())
    try:
        return [schema.model_validate(item) for item in data]
    except ValidationError as e:
        logger.critical(f"FATAL: Validation failed for {file_name}. See details below.")
        for error in e.errors():
            logger.critical(f"  - Location: {error['loc']} | Error: {error['msg']}")
        raise

# --- Seeding steps ---

async def _seed_membership_plans(db: AsyncSession):
    manager = PlanManager(db)
    data = _load_and_validate_data("membership_plans.json", PlanCreate)
    await manager.sync_plans(data)

    if not any(plan.slug == settings.FREE_PLAN_SLUG for plan in data):
        raise ValueError(f"membership_plans.json must define the free plan '{settings.FREE_PLAN_SLUG}'.")

# --- Main Orchestrator ---

async def seed_all_data(db: AsyncSession):
    """Orchestrates the seeding process in the correct order."""

    # 1. Idempotency Check
    if await db.scalar(select(func.count(MembershipPlan.id))) > 0:
        logger.warning("Data appears to be already seeded. Skipping.")
        return

    logger.info("Starting database seeding process...")

    seeding_steps = [
        ("Membership Plans", _seed_membership_plans),
    ]

    for name, step_func in seeding_steps:
        logger.info(f"Step: Seeding {name}...")
        await step_func(db)
        logger.info(f"Step: {name} seeded successfully.")

    logger.info("Database seeding process completed successfully.")

# --- Main execution block ---

async def main():
    """Sets up the database connection and runs the seeding orchestrator within a single transaction."""
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with AsyncSessionLocal() as db:
            async with db.begin():  # Single transaction for the whole process
                await seed_all_data(db)
    except Exception:
        logger.critical("FATAL ERROR during seeding: the transaction has been rolled back.", exc_info=True)
        sys.exit(1)
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
