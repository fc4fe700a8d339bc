"""
Coffer - precious metal holdings backend
Entry point for the spot-price API.
"""

import logging

from coffer.api import create_app
from coffer.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)

app = create_app(settings)


# ══════════════════════════════════════════════════════════════════════════════
# Run Server
# ══════════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn

    print("🏛  Starting Coffer backend...")
    print(f"📖 Documentation: http://localhost:{settings.port}/docs")
    print(f"🔧 Health Check: http://localhost:{settings.port}/health")
    print(f"   DB: {settings.db_path}")

    uvicorn.run(app, host=settings.host, port=settings.port)
