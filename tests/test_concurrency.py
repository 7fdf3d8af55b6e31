import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from src.core.concurrency import KeyedLocks, run_with_optimistic_retry
from src.core.database import Base, configure_sqlite_transactions
from src.core.exceptions import ConcurrentModificationError, OverpaymentRejectedError
from src.modules.appointments.models import Appointment
from src.modules.appointments.service import AppointmentService
from src.modules.users.models import User
from src.shared.clock import FixedClock
from src.shared.enums import AppointmentStatus, UserRole


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    async def rollback(self):
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_same_key_is_serialized_and_released():
    locks = KeyedLocks()
    order = []

    async def worker(name):
        async with locks.hold("appt-1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_keys_do_not_block_each_other():
    locks = KeyedLocks()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold("appt-1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other():
        async with locks.hold("appt-2"):
            entered.set()

    await asyncio.gather(holder(), other())
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_optimistic_retry_reruns_after_stale_write():
    db = FakeSession()
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "done"

    assert await run_with_optimistic_retry(db, operation, 3) == "done"
    assert db.rollbacks == 2


@pytest.mark.asyncio
async def test_optimistic_retry_gives_up():
    db = FakeSession()

    async def operation():
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrentModificationError) as excinfo:
        await run_with_optimistic_retry(db, operation, 2)

    assert db.rollbacks == 2
    assert excinfo.value.to_payload()["code"] == "concurrent_modification"
    assert excinfo.value.status_code == 409


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'versions.db'}")
    configure_sqlite_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def confirmed_id(session_factory, now):
    async with session_factory() as db:
        pro = User(role=UserRole.PRO, display_name="Camille")
        client = User(role=UserRole.CLIENT, display_name="Noah")
        db.add_all([pro, client])
        await db.flush()
        appointment = Appointment(
            pro_id=pro.user_id,
            client_id=client.user_id,
            proposer_id=client.user_id,
            title="Physio check-up",
            scheduled_start=now + timedelta(days=2),
            scheduled_end=now + timedelta(days=2, hours=1),
            duration_minutes=60,
            currency="EUR",
            price=Decimal("100.00"),
            status=AppointmentStatus.CONFIRMED,
        )
        db.add(appointment)
        await db.commit()
        return appointment.appointment_id


@pytest.mark.asyncio
async def test_stale_appointment_write_is_refused(session_factory, confirmed_id, now):
    async with session_factory() as first, session_factory() as second:
        stale = await first.get(Appointment, confirmed_id)
        await first.commit()

        writer = AppointmentService(second, clock=FixedClock(now))
        fresh = await writer.record_payment(confirmed_id, Decimal("60.00"))
        assert fresh.version == stale.version + 1

        stale.touch(now)
        with pytest.raises(StaleDataError):
            await first.commit()


@pytest.mark.asyncio
async def test_retried_payment_rereads_the_outstanding_balance(session_factory, confirmed_id, now):
    async with session_factory() as mine, session_factory() as theirs:
        service = AppointmentService(mine, clock=FixedClock(now))
        rival = AppointmentService(theirs, clock=FixedClock(now))
        load = service._load
        loads = []

        async def load_then_race(appointment_id):
            appointment = await load(appointment_id)
            loads.append(appointment.version)
            if len(loads) == 1:
                # Release the read so the other writer can commit in between.
                await mine.commit()
                await rival.record_payment(appointment_id, Decimal("80.00"))
            return appointment

        service._load = load_then_race

        with pytest.raises(OverpaymentRejectedError):
            await service.record_payment(confirmed_id, Decimal("60.00"))
        assert loads == [1, 2]

    async with session_factory() as db:
        stored = await db.get(Appointment, confirmed_id)
        assert [record.amount for record in stored.payments] == [Decimal("80.00")]
        assert stored.version == 2
