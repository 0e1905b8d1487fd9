"""
ASGI entry point for the onceline API.

Usage
-----
    $ python -m onceline.api.server
    $ uvicorn onceline.api.server:app --reload
"""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from onceline.api.app import create_app

# Load .env before the factory so settings see the values.
load_dotenv(dotenv_path=Path(".env"))

app = create_app()


def main() -> None:
    """Run the API server locally for development."""
    print(f"{'[ Key Check ]':=^60}")
    for var_name in ("OPENAI_API_KEY", "SUPABASE_URL", "SUPABASE_ANON_KEY"):
        value = os.getenv(var_name, "")
        if value:
            print(f"{var_name:<20} : ✅ Loaded ({value[:8]}...)")
        else:
            print(f"{var_name:<20} : ❌ Missing")
    print(f"{'=' * 60}\n")

    uvicorn.run("onceline.api.server:app", host="0.0.0.0", port=8000, reload=True, log_level="info")


if __name__ == "__main__":
    main()
