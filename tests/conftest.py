import pytest
from fastapi.testclient import TestClient

from answerprep.main import create_app
from answerprep.models.session_store import SessionStore

from fakes import FixedIndex


@pytest.fixture
def client():
    app = create_app(SessionStore(rng=FixedIndex(0)))
    with TestClient(app) as c:
        yield c
