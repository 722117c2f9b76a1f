"""
Database initialization script
Run this to create the session-state tables
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from agency_hub.core.config import settings
from agency_hub.core.database import engine, Base
from agency_hub.models.view_state import ViewStateEntry  # noqa: F401


def init_db():
    """Initialize database with tables"""
    print(f"Creating database tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(bind=engine)
    print("✓ Tables created successfully")


if __name__ == "__main__":
    print("=" * 60)
    print(f"{settings.APP_NAME} - Database Initialization")
    print("=" * 60)

    init_db()

    print("\n" + "=" * 60)
    print("Initialization complete!")
    print("=" * 60)
    print("\nYou can now start the API:")
    print("  uvicorn agency_hub.main:app --reload")
    print("=" * 60)
