"""Server launcher for the household inventory API.

Runs the FastAPI app via uvicorn. The app creates its schema (and seeds the
default categories and locations into an empty store) on startup.

Copyright (c) Bryn Gwalad 2025
"""

import os

from dotenv import load_dotenv

# Load .env from repo root so the app settings pick up config
load_dotenv()


def main() -> None:
    """Run uvicorn.

    Environment variables:
    - HOST: listen address (default 127.0.0.1)
    - PORT: listen port (default 8000)
    - RELOAD: set to '1' to enable uvicorn reload
    """
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "0") in ("1", "true", "True")

    import uvicorn

    # An import string lets uvicorn re-import the app when reload is enabled.
    uvicorn.run("api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
