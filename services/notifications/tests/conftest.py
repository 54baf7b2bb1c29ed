import os
import tempfile

import pytest

# repo builds its engine at import time
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/notifications.db")

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from repo import Base, engine  # noqa: E402


@pytest.fixture
def client():
    Base.metadata.drop_all(engine)
    with TestClient(app) as c:
        yield c
