# Point the app at an in-memory database before anything imports settings.
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULING_LOCK_ENABLED", "false")
