"""Pytest fixtures for CMF Studio tests."""

import io
import os

import pytest
from PIL import Image

from server import close_app, create_app


def make_png(color: str = "red", size: tuple[int, int] = (32, 32)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_noise_png(size: tuple[int, int] = (800, 800)) -> bytes:
    """Nearly incompressible PNG; 800x800 comes out above 1.5 MB."""
    width, height = size
    buf = io.BytesIO()
    Image.frombytes("RGB", size, os.urandom(width * height * 3)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png() -> bytes:
    return make_png()


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "IMAGE_STORAGE": "inline",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "SEED_DEFAULTS": False,
        "ADMIN_PASSWORD": "",
        "GEMINI_API_KEY": "",
        "ANTHROPIC_API_KEY": "",
        "GENERATION_TIMEOUT": 5,
    })
    yield app
    close_app(app)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def stores(app):
    with app.app_context():
        yield app.extensions["cmf_studio"].stores
