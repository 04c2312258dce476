#!/usr/bin/env python3
"""
Welcome Emails - grattis demo application

A signup service enqueues "welcome" and delayed "follow_up" events; a mailer
polls them and removes each one once it has been "sent".

Run modes:
  python main.py                                 # In-memory store
  python main.py --mongo-url mongodb://localhost:27017
  python main.py --interval 0.5 --users 20
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta

from bson import ObjectId

from grattis import EventQueue, EventRecord, InMemoryStore


class Mailer:
    """Batch handler that pretends to send mail and removes finished events."""

    def __init__(self, queue: EventQueue, fail_every: int = 0):
        self.queue = queue
        self.fail_every = fail_every
        self.sent: list[tuple[str, ObjectId]] = []
        self._seen = 0

    async def __call__(self, batch: list[EventRecord]) -> None:
        for record in batch:
            self._seen += 1
            if self.fail_every and self._seen % self.fail_every == 0:
                # Left in place, so it is delivered again on the next tick
                print(f"  ! mail server refused {record.value['type']} for {record.value['userId']}")
                continue
            self.sent.append((record.value["type"], record.value["userId"]))
            print(f"  -> {record.value['type']:<9} to user {record.value['userId']}")
            await self.queue.remove_event(record.id)


async def signup(queue: EventQueue, follow_up_after: timedelta) -> ObjectId:
    user_id = ObjectId()
    # Ids travel as strings and are stored as ObjectIds
    await queue.enqueue({"type": "welcome", "userId": str(user_id)})
    await queue.enqueue(
        {"type": "follow_up", "userId": str(user_id)},
        scheduled_at=datetime.now(UTC) + follow_up_after,
    )
    return user_id


async def main() -> int:
    parser = argparse.ArgumentParser(description="grattis welcome email demo")
    parser.add_argument("--mongo-url", help="MongoDB URL (default: in-memory store)")
    parser.add_argument("--users", type=int, default=5, help="Number of signups")
    parser.add_argument("--interval", type=float, default=0.2, help="Poll interval in seconds")
    parser.add_argument("--follow-up", type=float, default=1.0, help="Follow-up delay in seconds")
    parser.add_argument("--fail-every", type=int, default=3, help="Refuse every Nth mail (0 = never)")
    parser.add_argument("--log-level", default="WARNING", help="Level for the grattis JSON loggers")
    args = parser.parse_args()

    if args.mongo_url:
        queue = EventQueue.from_url(
            args.mongo_url, collection_name="WelcomeDemo", log_level=args.log_level.upper()
        )
    else:
        queue = EventQueue(InMemoryStore(), log_level=args.log_level.upper())

    async with queue:
        mailer = Mailer(queue, fail_every=args.fail_every)
        users = [await signup(queue, timedelta(seconds=args.follow_up)) for _ in range(args.users)]
        print(f"Enqueued {2 * len(users)} events for {len(users)} users")

        poller = await queue.start_polling(mailer, interval=args.interval, batch_size=100)

        expected = 2 * len(users)
        deadline = asyncio.get_running_loop().time() + args.follow_up + 20 * args.interval
        while len(mailer.sent) < expected and asyncio.get_running_loop().time() < deadline:
            await asyncio.sleep(args.interval)

        stats = poller.get_stats()

    print(
        f"Sent {len(mailer.sent)}/{expected} mails in {stats.batches_delivered} batches "
        f"({stats.handler_errors} handler errors, {stats.cycles_skipped} skipped ticks)"
    )
    return 0 if len(mailer.sent) == expected else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
