"""
Doll Pin API: Test Configuration (conftest.py)
================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Real SQLite (aiosqlite) database file per test, real Pillow codec,
       temporary upload directories. The FastAPI app is driven in-process
       through httpx's ASGITransport; the lifespan is not run, the fixtures
       put the Database and ImagePipeline on app.state instead.

Fixture Hierarchy:
    database      → Database on tmp_path/test.db with the schema created
    db_session    → AsyncSession from `database`
    upload_dir    → empty settings.upload_dir (the directory StaticFiles serves)
    pipeline      → ImagePipeline(PillowCodec) over `upload_dir`
    test_app      → fresh create_app() with state populated
    test_client   → AsyncClient bound to `test_app`
    make_image    → factory for in-memory JPEG/PNG bytes
    make_upload   → factory for Starlette UploadFile objects
"""

import io
import os
import shutil
import tempfile
from pathlib import Path

# Settings are read at import time: configure the environment BEFORE any
# `app` import so tests never touch a real database or upload directory.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="dollpin_test_uploads_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["APP_ENV"] = "production"
os.environ["WATERMARK_TEXT"] = ""

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402
from starlette.datastructures import Headers, UploadFile  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import Database  # noqa: E402
from app.services.image_pipeline import ImagePipeline  # noqa: E402
from app.services.pillow_codec import PillowCodec  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    db.connect()
    await db.create_schema()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Images & Uploads
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def upload_dir():
    """The app-wide upload directory, emptied before each test."""
    path = Path(settings.upload_dir)
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


@pytest.fixture
def pipeline(upload_dir):
    return ImagePipeline(
        upload_dir=upload_dir,
        codec=PillowCodec(),
        max_size=5 * 1024 * 1024,
        max_width=800,
        max_height=800,
        quality=85,
        watermark_text="",
    )


@pytest.fixture
def make_image():
    """
    Build encoded image bytes.

    Usage:
        data = make_image(1400, 1000)                 # noisy RGB JPEG
        data = make_image(64, 64, fmt="PNG", mode="RGBA", color=(0, 0, 255, 128))
    """

    def _make(width=64, height=64, fmt="JPEG", mode="RGB", color=None):
        if color is None:
            # Noise defeats JPEG compression so sizes look like real photos
            image = Image.effect_noise((width, height), 64).convert(mode)
        else:
            image = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        image.save(buffer, fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_upload():
    def _make(data: bytes, filename="photo.jpg", content_type="image/jpeg"):
        return UploadFile(
            file=io.BytesIO(data),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )

    return _make


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_app(database, pipeline):
    from app.main import create_app

    application = create_app()
    application.state.database = database
    application.state.image_pipeline = pipeline
    return application


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    Async HTTP client wired straight into the ASGI app.

    raise_app_exceptions=False lets tests observe the 500 envelope produced
    by the catch-all handler instead of the re-raised exception.
    """
    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
