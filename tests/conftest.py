import io
from pathlib import Path

import pytest
from PIL import Image
from PyPDF2 import PdfWriter

from media_compressor import bootstrap
from media_compressor.config import RuntimeConfig
from media_compressor.core.models import FileState, StagedFile
from media_compressor.factory import create_app


def make_image_bytes(size=(400, 200), fmt="PNG", mode="RGB", color=(200, 40, 40)):
    """Encode a solid-colour image in memory."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_pdf_bytes(pages=1, password=None):
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    if password:
        writer.encrypt(password)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def staged_file(path: Path, name="sample") -> StagedFile:
    """A staged file already past admission, as the staging layer returns it."""
    staged = StagedFile(
        id="test",
        original_name=name,
        path=path,
        size_bytes=path.stat().st_size,
        mime_type="application/octet-stream",
    )
    staged.advance(FileState.VALIDATED)
    return staged


@pytest.fixture
def upload_dir(tmp_path):
    folder = tmp_path / "uploads"
    folder.mkdir()
    return folder


@pytest.fixture
def runtime_config(upload_dir):
    return RuntimeConfig(
        upload_folder=upload_dir,
        max_image_bytes=1024 * 1024,
        max_pdf_bytes=1024 * 1024,
        max_batch_images=3,
        max_batch_pdfs=2,
        gs_timeout_seconds=5.0,
        max_active_compressions=1,
        batch_workers=2,
    )


@pytest.fixture
def app(monkeypatch, runtime_config):
    monkeypatch.setattr(bootstrap, "bootstrap_runtime", lambda config: None)
    flask_app = create_app(runtime_config)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def staged_files(upload_dir):
    """Names currently left in the staging folder."""
    return lambda: sorted(p.name for p in upload_dir.iterdir())
