import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

os.environ["TESTING"] = "true"
os.environ["SPRKZ_LOG_JSON"] = "false"


@dataclass
class FakeResponse:
    status_code: int = 200
    text: str = '{"ok": true}'


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: Dict[str, str]
    data: Optional[bytes]
    timeout: Any
    at: float = field(default_factory=time.monotonic)


class FakeHttp:
    """Stands in for requests.Session inside the webhook invoker.

    Responses are scripted per URL and consumed in order; the last one repeats.
    A scripted item may be an exception instance, which is raised instead.
    """

    def __init__(self):
        self.calls: List[RecordedCall] = []
        self.timeline: List[tuple] = []
        self._scripts: Dict[str, list] = {}
        self._lock = threading.Lock()

    def script(self, url: str, *responses):
        self._scripts[url] = [
            FakeResponse(r) if isinstance(r, int) else r for r in responses
        ]

    def calls_to(self, url: str) -> List[RecordedCall]:
        return [call for call in self.calls if call.url == url]

    def request(self, method, url, headers=None, data=None, timeout=None):
        with self._lock:
            call = RecordedCall(method, url, dict(headers or {}), data, timeout)
            self.calls.append(call)
            self.timeline.append(("request", url, call.at))
            script = self._scripts.get(url) or [FakeResponse()]
            item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")

    from sprkz.factory import create_app
    from sprkz.infra.db import db

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "LOG_JSON": False,
        "LOG_LEVEL": "WARNING",
    })
    with app.app_context():
        yield app
        engine = app.extensions['automation_engine']
        for execution_id in engine.running_executions():
            engine.cancel(execution_id)
        engine.shutdown(wait=True, timeout=10)
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions['automation_engine']


@pytest.fixture
def fake_http(engine):
    fake = FakeHttp()
    engine.invoker.http = fake
    return fake


@pytest.fixture
def make_webhook(app):
    from sprkz.infra.db import db
    from sprkz.services.webhook_service import WebhookService

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Target{counter['n']}",
            "url": f"https://hooks.example.com/target{counter['n']}",
            "retry_enabled": False,
            "retry_count": 0,
            "retry_delay_seconds": 0,
            "timeout_seconds": 5,
        }
        data.update(overrides)
        return WebhookService(db.session).create_webhook(data)

    return _make


@pytest.fixture
def make_automation(app):
    from sprkz.infra.db import db
    from sprkz.services.automation_service import AutomationService

    def _make(steps, **overrides):
        data = {
            "name": "Welcome",
            "trigger_type": "manual",
            "steps": [
                dict({"step_order": index + 1}, **step) for index, step in enumerate(steps)
            ],
        }
        data.update(overrides)
        return AutomationService(db.session).create_automation(data)

    return _make


@pytest.fixture
def fresh(app):
    """Query helper that never returns stale rows written by engine sessions."""
    from sprkz.infra.db import db

    def _query(model):
        db.session.expire_all()
        return db.session.query(model)

    return _query
