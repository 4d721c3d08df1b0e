"""Point the application at a throwaway SQLite file before any project module is imported."""
import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="capital-filing-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'api.db')}"
os.environ.setdefault("AUTOSAVE_BACKOFF_MS", "1")
