import os
import sys
import tempfile
from pathlib import Path

import pytest

# The sandbox reads its configuration at import time
_DB_DIR = Path(tempfile.mkdtemp(prefix="gateway-sandbox-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'gateway.sqlite3'}"
os.environ["GATEWAY_KEY_ID"] = "rzp_test_key"
os.environ["GATEWAY_KEY_SECRET"] = "sandbox-secret"
os.environ["GATEWAY_WEBHOOK_SECRET"] = "sandbox-webhook-secret"
os.environ.pop("WEBHOOK_URL", None)

SERVICE_DIR = str(Path(__file__).resolve().parents[1])
if SERVICE_DIR not in sys.path:
    sys.path.insert(0, SERVICE_DIR)


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def auth():
    return ("rzp_test_key", "sandbox-secret")
