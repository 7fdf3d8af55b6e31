"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.core.concurrency import KeyedLocks
from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging_config import configure_logging
from src.modules.appointments.router import payments_router
from src.modules.appointments.router import router as appointments_router
from src.modules.payments.provider import HttpPaymentProvider, PaymentProvider
from src.modules.reminders.delivery import HttpPushDelivery, PushDelivery
from src.modules.reminders.handlers import register_reminder_handlers
from src.modules.reminders.router import router as reminders_router
from src.modules.schedule.router import router as schedule_router
from src.modules.users.router import router as users_router
from src.shared.clock import Clock, SystemClock
from src.shared.events import EventBus


def create_app(
    *,
    clock: Clock | None = None,
    payment_provider: PaymentProvider | None = None,
    push_delivery: PushDelivery | None = None,
) -> FastAPI:
    configure_logging()
    clock = clock or SystemClock()
    payment_provider = payment_provider or HttpPaymentProvider()
    push_delivery = push_delivery or HttpPushDelivery()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        for client in (payment_provider, push_delivery):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    events = EventBus()
    register_reminder_handlers(events, clock)
    app.state.clock = clock
    app.state.events = events
    app.state.locks = KeyedLocks()
    app.state.payment_provider = payment_provider
    app.state.push_delivery = push_delivery

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(users_router)
    app.include_router(schedule_router)
    app.include_router(appointments_router)
    app.include_router(payments_router)
    app.include_router(reminders_router)

    return app


app = create_app()
