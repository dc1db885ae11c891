"""
Shared fixtures for the API tests: an app wired to in-memory services.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from taskboard.app import create_app
from taskboard.config import Settings
from taskboard.dependencies import Services, in_memory_services

PASSWORD = "secret123"


def make_settings(**overrides) -> Settings:
    values = {"use_in_memory_backends": True, "client_url": "http://localhost:3000"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class ApiHarness:
    def __init__(self, services: Services | None = None):
        self.services = services or in_memory_services()
        self.app = create_app(make_settings(), self.services)
        self.client = TestClient(self.app)

    def register(self, email: str) -> tuple[str, dict]:
        """Create a user and return (user id, Authorization headers)."""
        identity = self.services.identity.create_user(email, PASSWORD)
        session = self.services.identity.sign_in(email, PASSWORD)
        return identity.id, {"Authorization": f"Bearer {session.access_token}"}
