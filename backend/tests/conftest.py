"""
PDFSign Backend: Test Configuration (conftest.py)
===================================================

Fixture Hierarchy:
    Unit fixtures (no I/O):
    ├── mock_db_session:   AsyncMock standing in for AsyncSession
    ├── make_pdf:          factory for blank PDFs of N pages
    ├── sample_pdf_bytes:  one blank US-Letter page (612 x 792)
    └── png/jpeg/gif_data_url: tiny images as data URLs (Pillow)

    Application fixtures (temporary SQLite file + temporary storage):
    ├── test_settings:     Settings pointing at tmp_path
    ├── test_app:          create_app(test_settings) with tables created
    ├── test_client:       httpx AsyncClient over ASGITransport
    └── auth_headers / other_auth_headers: bearer tokens for two callers
"""

import base64
import io
import os
import tempfile

# Settings are read at import time; point them away from real services first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="pdfsign_db_"), "import.db"
)
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="pdfsign_test_")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SMTP_HOST"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402
from pypdf import PdfWriter  # noqa: E402

from pdfsign.config import Settings  # noqa: E402

PAGE_WIDTH = 612
PAGE_HEIGHT = 792


def _image_data_url(fmt: str, media_type: str) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (60, 20), color=(20, 40, 200)).save(buffer, format=fmt)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


# ══════════════════════════════════════════════════════════════════════════
# Unit Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """AsyncSession stand-in; stores call add/execute/commit/rollback."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def make_pdf():
    """Factory: make_pdf(pages=1, width=612, height=792) -> PDF bytes."""
    def _make(pages: int = 1, width: float = PAGE_WIDTH, height: float = PAGE_HEIGHT) -> bytes:
        writer = PdfWriter()
        for _ in range(pages):
            writer.add_blank_page(width=width, height=height)
        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()
    return _make


@pytest.fixture
def sample_pdf_bytes(make_pdf):
    return make_pdf()


@pytest.fixture
def png_data_url():
    return _image_data_url("PNG", "image/png")


@pytest.fixture
def jpeg_data_url():
    return _image_data_url("JPEG", "image/jpeg")


@pytest.fixture
def gif_data_url():
    return _image_data_url("GIF", "image/gif")


# ══════════════════════════════════════════════════════════════════════════
# Application Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path):
    storage = tmp_path / "storage"
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        storage_root=str(storage),
        public_base_url="http://test",
        secret_key="test-secret-key",
        smtp_host="",
        rate_limit_requests=10_000,
        retry_max_attempts=1,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def test_app(test_settings):
    from pdfsign.main import create_app

    app = create_app(test_settings)
    await app.state.database.create_all()
    yield app
    await app.state.object_store.close()
    await app.state.database.dispose()


@pytest_asyncio.fixture
async def test_client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(test_app):
    token = test_app.state.identity.issue_token("user-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(test_app):
    token = test_app.state.identity.issue_token("user-2")
    return {"Authorization": f"Bearer {token}"}
