# pyright: reportUnusedFunction=false
import os
import sys
import tempfile
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read once at import time, so the environment has to be ready
# before anything under eduai is imported.
_DB_DIR = tempfile.mkdtemp(prefix="eduai-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'eduai_test.db'}"
os.environ["OPENAI_MODE"] = "fake"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"


def _ensure_test_schema() -> None:
    from eduai.db.schema import metadata
    from eduai.db.session import engine

    metadata.create_all(bind=engine)


_ensure_test_schema()


@pytest.fixture(autouse=True)
def _isolate_db() -> None:
    from eduai.db.schema import metadata
    from eduai.db.session import engine, query_cache

    query_cache.clear()

    tables = list(metadata.sorted_tables)
    if not tables:
        return

    with engine.begin() as conn:
        for t in reversed(tables):
            _ = conn.execute(t.delete())
