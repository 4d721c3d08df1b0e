"""
Shared fixtures for service tests: a fresh SQLite file per test case and
ready-made actors.
"""
import os
import shutil
import tempfile
import unittest

import models  # noqa: F401
from database import Base, build_engine, build_sessionmaker, init_db
from schemas.enums import Role
from services import application_store as store
from services import section_tracker
from services.access_control import ActorContext

ISSUER = ActorContext(user_id="issuer-1", role=Role.ISSUER, company_id="company-a")
OTHER_ISSUER = ActorContext(user_id="issuer-2", role=Role.ISSUER, company_id="company-b")
ADVISOR = ActorContext(user_id="ib-1", role=Role.IB_ADVISOR)
REGULATOR = ActorContext(user_id="reg-1", role=Role.CMA_REGULATOR)
OTHER_REGULATOR = ActorContext(user_id="reg-2", role=Role.CMA_REGULATOR)
ADMIN = ActorContext(user_id="admin-1", role=Role.CMA_ADMIN)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmpdir = tempfile.mkdtemp(prefix="capital-filing-")
        self.engine = build_engine(f"sqlite+aiosqlite:///{os.path.join(self._tmpdir, 'test.db')}")
        await init_db(self.engine)
        self.sessionmaker = build_sessionmaker(self.engine)
        self.session = self.sessionmaker()

    async def asyncTearDown(self):
        await self.session.close()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await self.engine.dispose()
        shutil.rmtree(self._tmpdir, ignore_errors=True)


async def fill_section(session, application_id, number, actor=ISSUER, fields=None):
    """Write ``fields`` (default: one filled leaf) into a section through the tracker."""
    section = await store.get_section(session, application_id, number)
    for path, value in (fields or {"field": f"value-{number}"}).items():
        section = await section_tracker.update_field(session, section.id, path, value, actor)
    return section
