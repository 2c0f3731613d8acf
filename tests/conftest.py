from typing import List, Optional

import pytest

from backend.app.credentials import Credential, CredentialResolver
from backend.app.scoring import ScoringHandler

from fakes import FakeAI, FakeDatabase


@pytest.fixture
def calls() -> List[str]:
    return []


@pytest.fixture
def make_handler(calls):
    """Build a ScoringHandler around fakes; returns (handler, db, ai, credentials_seen)."""

    def _make(db: Optional[FakeDatabase] = None, ai: Optional[FakeAI] = None,
              service_role_key: Optional[str] = "service-key"):
        db = db or FakeDatabase(calls)
        ai = ai or FakeAI(calls)
        seen: List[Credential] = []

        def factory(credential: Credential) -> FakeDatabase:
            seen.append(credential)
            return db

        handler = ScoringHandler(
            resolver=CredentialResolver(service_role_key, "static-key"),
            database_factory=factory,
            ai_client=ai,
        )
        return handler, db, ai, seen

    return _make
