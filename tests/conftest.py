import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("DATABASE_URL", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from errors import DownstreamError
from identity import get_identity_verifier
from images import get_image_uploader
from main import app

STRONG_PASSWORD = "Secret123"


class FakeVerifier:
    """Accepts tokens registered in `tokens`, rejects everything else"""

    def __init__(self):
        self.tokens = {}

    def verify(self, token):
        if token not in self.tokens:
            raise DownstreamError("Failed to authenticate. Try with another account")
        return self.tokens[token]


class FakeUploader:

    def __init__(self):
        self.uploaded = []

    def upload(self, local_path):
        self.uploaded.append(local_path)
        if os.path.exists(local_path):
            os.remove(local_path)
        return f"https://images.example.com/{os.path.basename(local_path)}"


@pytest.fixture
def db():
    database = mongomock.MongoClient().blog_test
    ensure_indexes(database)
    return database


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(db, verifier, uploader, tmp_path, monkeypatch):
    import main
    monkeypatch.setattr(main.settings, "upload_dir", str(tmp_path))
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_identity_verifier] = lambda: verifier
    app.dependency_overrides[get_image_uploader] = lambda: uploader
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signup(client):
    """Create an account and return its session payload plus auth headers"""
    def _signup(fullname="Test User", email="test@example.com", password=STRONG_PASSWORD):
        response = client.post("/signup", json={"fullname": fullname, "email": email, "password": password})
        assert response.status_code == 200, response.text
        data = response.json()
        data["headers"] = {"Authorization": f"Bearer {data['accessToken']}"}
        return data
    return _signup


@pytest.fixture
def user_id(db):
    def _user_id(username):
        return str(db.users.find_one({"personal_info.username": username})["_id"])
    return _user_id


@pytest.fixture
def publish(client):
    """Publish a blog as the given account and return its blog_id"""
    def _publish(headers, title="A day in the life", draft=False, **overrides):
        payload = {
            "title": title,
            "des": "A short description",
            "banner": "https://images.example.com/banner.png",
            "content": {"blocks": [{"type": "paragraph", "data": {"text": "Hello"}}]},
            "tags": ["Life"],
            "draft": draft,
        }
        payload.update(overrides)
        response = client.post("/create-blog", json=payload, headers=headers)
        assert response.status_code == 200, response.text
        return response.json()["id"]
    return _publish
