from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from writingresearch.config import Settings, settings
from writingresearch.main import create_app
from writingresearch.service import WritingService


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_backend="local",
        storage_root=str(tmp_path / "data"),
        peer_groups="A,B",
        admin_password="letmein",
        api_key="",
    )


@pytest.fixture()
def service(test_settings: Settings) -> Iterator[WritingService]:
    writing_service = WritingService(test_settings)
    yield writing_service
    writing_service.close()


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setattr(settings, "storage_backend", "local")
    monkeypatch.setattr(settings, "storage_root", str(tmp_path / "api-data"))
    monkeypatch.setattr(settings, "peer_groups", "A,B")
    monkeypatch.setattr(settings, "admin_password", "letmein")
    monkeypatch.setattr(settings, "admin_token_secret", "test-secret")
    monkeypatch.setattr(settings, "api_key", "")
    with TestClient(create_app()) as test_client:
        yield test_client
