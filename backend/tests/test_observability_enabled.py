from __future__ import annotations

import os
import importlib
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.db.deps import get_db
from app.observability import client as client_module
from app.services.transformer.llm import get_language_model
from transformer_fakes import FakeLanguageModel


class _DummyTrace:
    def __init__(self, name=None, metadata=None, **kwargs):
        self.name = name
        self.metadata = metadata or {}

    def update(self, metadata=None, **kwargs):
        if metadata:
            self.metadata = {**self.metadata, **metadata}

    def end(self):
        pass


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.traces = []

    def trace(self, **kwargs):
        trace = _DummyTrace(name=kwargs.get("name"), metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def sqlite_override(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    return override_get_db


@pytest.mark.skipif("OPIK_API_KEY" not in os.environ, reason="OPIK_API_KEY env var required for Opik tests")
def test_app_runs_with_opik_enabled(monkeypatch, sqlite_override):
    api_key = os.environ["OPIK_API_KEY"]
    monkeypatch.setenv("OPIK_ENABLED", "true")
    monkeypatch.setenv("OPIK_PROJECT", "bito-transformer-test")
    monkeypatch.setenv("OPIK_API_KEY", api_key)

    import app.core.config as config_module
    import app.main as main_module

    importlib.reload(config_module)
    importlib.reload(client_module)
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    client_module.reset_opik_client()
    reloaded_main = importlib.reload(main_module)

    reloaded_main.app.dependency_overrides[get_db] = sqlite_override
    reloaded_main.app.dependency_overrides[get_language_model] = lambda: FakeLanguageModel(configured=False)

    with TestClient(reloaded_main.app) as test_client:
        assert test_client.get("/health").status_code == 200
        resp = test_client.post(
            "/transformers/clarify",
            json={"userId": str(uuid4()), "goal": "Testing the opik path with a fitness goal"},
        )
        assert resp.status_code == 200
        assert resp.json()["needsClarification"] is False

    reloaded_main.app.dependency_overrides.clear()

    monkeypatch.setenv("OPIK_ENABLED", "false")
    importlib.reload(config_module)
    importlib.reload(client_module)
    client_module.reset_opik_client()
    importlib.reload(main_module)
