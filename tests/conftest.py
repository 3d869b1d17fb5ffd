import pytest

from wishlist import create_app
from wishlist.config import TestConfig
from wishlist.extensions import db


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        UPLOAD_ROOT = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()
