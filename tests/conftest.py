import pytest

import app as app_module


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(app_module, "submissions", [])
    monkeypatch.setattr(app_module, "_get_claude_client", lambda: None)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client
