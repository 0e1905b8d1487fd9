# scripts/smoke.py
"""
Smoke test for the onceline engine against the real assistant model.

Usage
-----
1. Local mode, scratch data directory:
    $ python scripts/smoke.py

2. Custom first message:
    $ python scripts/smoke.py --message "I grew up in Porto and moved to Lyon in 2012"

Requires ``OPENAI_API_KEY`` (read from ``.env`` when present).
"""

import argparse
import asyncio
import logging
import sys
import tempfile
from pathlib import Path

from dotenv import load_dotenv

from onceline.core.dates import format_event_date
from onceline.core.settings import load_settings
from onceline.engine import TimelineEngine

# --------------------------------------------------------------------------- #
# Environment Setup
# --------------------------------------------------------------------------- #
env_path = Path(".env")
if env_path.exists():
    load_dotenv(env_path)
    print("✅ Loaded .env file")
else:
    print("⚠️  Warning: No .env file found! The assistant may fail due to a missing key.")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

DEFAULT_MESSAGE = (
    "I was born in Lisbon in March 1988. We moved to Porto when I was six, "
    "and I started university in Coimbra in 2006."
)


async def run(message: str, data_dir: Path) -> None:
    config = load_settings().model_copy(update={"data_dir": data_dir})
    engine = TimelineEngine.from_settings(config)
    engine.init_as_local()

    print(f"\n💬 Sending: {message}")
    await engine.send_message(message)

    state = engine.state
    print("\n" + "=" * 60)
    for msg in state.messages:
        print(f"[{msg.role}] {msg.content}")
    print("=" * 60)

    print(f"\n📌 Events ({len(state.events)}):")
    for event in state.events:
        when = format_event_date(event.start_date, event.date_precision)
        print(f"  - {when:<14} {event.title} [{event.category or 'uncategorized'}]")

    await engine.aclose()


def main() -> None:
    """Execute the smoke test workflow."""
    parser = argparse.ArgumentParser(description="Run onceline smoke test")
    parser.add_argument("--message", "-m", type=str, default=DEFAULT_MESSAGE)
    args = parser.parse_args()

    with tempfile.TemporaryDirectory(prefix="onceline-smoke-") as tmp:
        asyncio.run(run(args.message, Path(tmp)))


if __name__ == "__main__":
    main()
