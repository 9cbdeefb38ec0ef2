"""
Local runner for the PharmaBridge marketplace API.

Binds to HOST / PORT from the environment (defaults 127.0.0.1:8000) and
exits cleanly on SIGINT / SIGTERM.
"""
import signal
import sys

import uvicorn

from pharmabridge.core.config import settings


def handle_signal(sig, frame):
    print(f"\nPharmaBridge API stopping (signal {sig})")
    sys.exit(0)


signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)

if __name__ == "__main__":
    print(f"PharmaBridge marketplace API [{settings.ENVIRONMENT}] on http://{settings.HOST}:{settings.PORT}")
    print(f"Database: {settings.DATABASE_URL.split('@')[-1]}")
    uvicorn.run(
        "pharmabridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )
