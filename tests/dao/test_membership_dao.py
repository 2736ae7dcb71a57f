# tests/dao/test_membership_dao.py

from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.dialects import postgresql

from haggle.dao.membership.membership_dao import UserMembershipDao, MEMBERSHIP_LOCK_NAMESPACE


def _session(dialect_name: str) -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect_name
    session.execute = AsyncMock()
    return session


async def test_lock_user_takes_advisory_lock_on_postgresql():
    session = _session("postgresql")

    await UserMembershipDao(session).lock_user(77)

    session.execute.assert_awaited_once()
    stmt = session.execute.await_args.args[0]
    sql = str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
    assert f"pg_advisory_xact_lock({MEMBERSHIP_LOCK_NAMESPACE}, 77)" in sql


async def test_lock_user_is_a_no_op_on_sqlite():
    session = _session("sqlite")

    await UserMembershipDao(session).lock_user(77)

    session.execute.assert_not_awaited()


async def test_get_by_session_id(db_session, plans, grant_plan):
    membership = await grant_plan(501, plans["free"])
    membership.session_id = "bill_1_abcdefabcdef"
    await db_session.flush()
    dao = UserMembershipDao(db_session)

    assert (await dao.get_by_session_id("bill_1_abcdefabcdef")).id == membership.id
    assert await dao.get_by_session_id("bill_2_000000000000") is None
