"""
Membership maintenance.

    python scripts/repair_memberships.py expire-pending [--hours 24]
    python scripts/repair_memberships.py ensure-active USER_ID [USER_ID ...]

expire-pending cancels pending memberships that were never confirmed.
ensure-active leaves each user with exactly one active membership, granting
the free plan where there is none.
"""
import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from haggle.core.config import settings
from haggle.core.context import AppContext
from haggle.services.membership.lifecycle_service import MembershipLifecycleService

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

async def _expire_pending(db: AsyncSession, hours: int) -> bool:
    service = MembershipLifecycleService(AppContext(db=db))
    result = await service.expire_stale_pending(timedelta(hours=hours))
    if result.success:
        logger.info(f"Expired {result.data} pending membership(s).")
    else:
        logger.error(f"Expiring pending memberships failed: {result.message}")
    return result.success

async def _ensure_active(db: AsyncSession, user_ids: list[int]) -> bool:
    service = MembershipLifecycleService(AppContext(db=db))
    ok = True
    for user_id in user_ids:
        result = await service.ensure_active_membership(user_id)
        if result.success:
            logger.info(f"User {user_id}: active membership {result.data.id} ({result.data.plan.slug if result.data.plan else '?'}).")
        else:
            logger.error(f"User {user_id}: {result.message}")
            ok = False
    return ok

def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Membership maintenance tasks.")
    sub = parser.add_subparsers(dest="command", required=True)

    expire = sub.add_parser("expire-pending", help="Cancel pending memberships that were never confirmed.")
    expire.add_argument("--hours", type=int, default=settings.STALE_PENDING_HOURS)

    ensure = sub.add_parser("ensure-active", help="Make sure each user has exactly one active membership.")
    ensure.add_argument("user_ids", type=int, nargs="+")
    return parser.parse_args(argv)

async def main(argv: list[str]) -> int:
    args = _parse_args(argv)
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with AsyncSessionLocal() as db:
            async with db.begin():
                if args.command == "expire-pending":
                    ok = await _expire_pending(db, args.hours)
                else:
                    ok = await _ensure_active(db, args.user_ids)
    finally:
        await engine.dispose()
    return 0 if ok else 1

if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
