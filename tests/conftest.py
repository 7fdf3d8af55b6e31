from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.core.concurrency import KeyedLocks  # noqa: E402
from src.core.database import Base, configure_sqlite_transactions  # noqa: E402
from src.modules.appointments import models as appointment_models  # noqa: E402,F401
from src.modules.reminders import models as reminder_models  # noqa: E402,F401
from src.modules.schedule import models as schedule_models  # noqa: E402,F401
from src.modules.users.models import User  # noqa: E402
from src.shared.clock import FixedClock  # noqa: E402
from src.shared.enums import UserRole  # noqa: E402
from src.shared.events import EventBus  # noqa: E402

# Monday 2 March 2026, 09:00 UTC (10:00 in Europe/Paris).
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

PRO_ID = "01PRO0000000000000000000AA"
CLIENT_ID = "01CLIENT00000000000000000A"
OTHER_PRO_ID = "01PRO0000000000000000000BB"


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    configure_sqlite_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest_asyncio.fixture
async def users(db_session):
    pro = User(user_id=PRO_ID, role=UserRole.PRO, display_name="Camille", timezone="Europe/Paris")
    client = User(user_id=CLIENT_ID, role=UserRole.CLIENT, display_name="Noah", timezone="Europe/Paris")
    other_pro = User(user_id=OTHER_PRO_ID, role=UserRole.PRO, display_name="Inès", timezone="Europe/Paris")
    db_session.add_all([pro, client, other_pro])
    await db_session.commit()
    return {"pro": pro, "client": client, "other_pro": other_pro}


@pytest.fixture
def now():
    return NOW
