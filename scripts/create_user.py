"""Create a gateway user and print their API key.

Usage:
    python scripts/create_user.py "Ada Lovelace" --email ada@example.com
    python scripts/create_user.py "Grace Hopper" --premium-days 30
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone

from bytegate.app.core.security import generate_api_key, hash_api_key
from bytegate.app.db.async_session import (
    close_async_engine,
    get_async_session,
    init_async_db,
)
from bytegate.app.db.crud import create_user, upsert_subscription


async def main(name: str, email: str | None, premium_days: int) -> None:
    await init_async_db()

    api_key = generate_api_key()
    async with get_async_session() as session:
        user = await create_user(session, name=name, api_key_hash=hash_api_key(api_key), email=email)
        if premium_days > 0:
            await upsert_subscription(
                session,
                user.id,
                current_period_end=datetime.now(timezone.utc) + timedelta(days=premium_days),
            )
        await session.commit()

    await close_async_engine()

    print(f"User id:  {user.id}")
    print(f"API key:  {api_key}")
    if premium_days > 0:
        print(f"Premium:  {premium_days} days")
    print("Store the API key now; only its hash is kept.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a gateway user")
    parser.add_argument("name", help="Display name")
    parser.add_argument("--email", help="E-mail address (matched against ADMIN_EMAILS)")
    parser.add_argument(
        "--premium-days",
        type=int,
        default=0,
        help="Attach an active premium subscription for this many days",
    )

    args = parser.parse_args()
    asyncio.run(main(args.name, args.email, args.premium_days))
