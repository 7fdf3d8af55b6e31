import asyncio
import os

from dotenv import load_dotenv
import httpx
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

from src.core.database import resolve_async_database_url

# 1. Load the .env file
load_dotenv()

DB_LABELS = {
    "postgresql": "PostgreSQL",
    "mysql": "MySQL",
    "sqlite": "SQLite (testing)",
}

HEALTH_QUERIES = {
    "postgresql": "SELECT version();",
    "mysql": "SELECT VERSION();",
}

REMOTE_SERVICES = {
    "PAYMENT_PROVIDER_BASE": "Payment provider",
    "PUSH_GATEWAY_BASE": "Push gateway",
}


async def verify_database():
    print("-" * 30)
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        print("❌ Error: DATABASE_URL is not set")
        return False

    try:
        async_url = resolve_async_database_url(db_url)
        url = make_url(async_url)
    except ValueError as exc:
        print(f"❌ Unsupported database configuration: {exc}")
        return False

    backend = url.get_backend_name()
    label = DB_LABELS.get(backend, backend)
    print(f"🔍 Checking {label} connection...")
    print(f"ℹ️  DSN: {url.render_as_string(hide_password=True)}")

    query = HEALTH_QUERIES.get(backend, "SELECT 1")

    try:
        engine = create_async_engine(async_url, echo=False)
        async with engine.connect() as conn:
            result = await conn.execute(text(query))
            version = result.scalar()
            print(f"✅ {label} connection OK, returned: {version}")
        await engine.dispose()
        return True
    except Exception as e:  # noqa: BLE001 - surface connection failure
        print(f"❌ {label} connection failed: {e}")
        return False


async def verify_remote(env_name, label):
    print("-" * 30)
    base_url = os.getenv(env_name)
    if not base_url:
        print(f"⚠️  {env_name} is not set, skipping {label}")
        return True

    print(f"🔍 Checking {label} at {base_url}...")
    try:
        async with httpx.AsyncClient(base_url=base_url, timeout=5.0) as client:
            response = await client.get("/")
        print(f"✅ {label} reachable (HTTP {response.status_code})")
        return True
    except httpx.HTTPError as e:
        print(f"❌ {label} unreachable: {e}")
        return False


async def main():
    print("🚀 Verifying environment configuration...")

    results = [await verify_database()]
    for env_name, label in REMOTE_SERVICES.items():
        results.append(await verify_remote(env_name, label))

    print("-" * 30)
    if all(results):
        print("🎉 All configured services are reachable.")
    else:
        print("⚠️  Warning: connection problems found, check the .env file and running services.")

if __name__ == "__main__":
    asyncio.run(main())
