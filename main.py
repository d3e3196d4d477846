"""
main.py: starts the RentalOps API under uvicorn.

    python main.py

Host, port and reload come from RENTALOPS_HOST, RENTALOPS_PORT and
RENTALOPS_RELOAD. OpenAPI docs are served under /docs.

Equivalent direct invocation:
    uvicorn app:app --reload
"""

from __future__ import annotations

import os

import uvicorn

from rentalops.utils.config import get_settings


HOST = os.getenv("RENTALOPS_HOST", "127.0.0.1")
PORT = int(os.getenv("RENTALOPS_PORT", "8000"))
RELOAD = os.getenv("RENTALOPS_RELOAD", "1").lower() in ("1", "true", "yes")


def main() -> None:
    settings = get_settings()
    print("=" * 60)
    print(f"  {settings.app_name} v{settings.app_version}")
    print(f"  Database : {settings.database_path}")
    print(f"  Server   : http://{HOST}:{PORT}")
    print(f"  API docs : http://{HOST}:{PORT}/docs")
    print("=" * 60)

    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=RELOAD,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
