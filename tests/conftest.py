import io
from dataclasses import replace
from pathlib import Path

import pikepdf
import pytest

from pdf_shrinker.settings import Settings
from pdf_shrinker.storage import StorageConfig, TransientStore


def _page_text(label: str, lines: int) -> bytes:
    ops = ["BT", "/F1 10 Tf", "12 TL", "72 760 Td"]
    for i in range(lines):
        ops.append(f"({label} line {i:04d} lorem ipsum dolor sit amet) Tj T*")
    ops.append("ET")
    return "\n".join(ops).encode("ascii")


def make_pdf(*labels: str, lines: int = 200) -> bytes:
    """Build a PDF with uncompressed content streams, one page per label."""
    pdf = pikepdf.new()
    font = pdf.make_indirect(
        pikepdf.Dictionary(
            Type=pikepdf.Name.Font,
            Subtype=pikepdf.Name.Type1,
            BaseFont=pikepdf.Name.Helvetica,
        )
    )
    for label in labels or ("Hello PDF World",):
        page = pdf.add_blank_page(page_size=(612, 792))
        page.obj.Resources = pikepdf.Dictionary(Font=pikepdf.Dictionary(F1=font))
        page.obj.Contents = pdf.make_stream(_page_text(label, lines))
    buf = io.BytesIO()
    pdf.save(buf, compress_streams=False, object_stream_mode=pikepdf.ObjectStreamMode.disable)
    return buf.getvalue()


@pytest.fixture(name="make_pdf")
def make_pdf_fixture():
    return make_pdf


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """A single-page PDF with a sizeable uncompressed content stream."""
    return make_pdf("Hello PDF World")


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    return make_pdf("Page one content", "Page two content", "Page three content")


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    base = Settings.from_env()
    return replace(
        base,
        incoming_dir=tmp_path / "uploads",
        outgoing_dir=tmp_path / "compressed",
        logs_dir=tmp_path / "logs",
        max_document_size=5 * 1024 * 1024,
        chunk_size=4096,
        rewrite_engine="pikepdf",
        object_streams="disable",
        linearize=True,
        cors_origins=("*",),
    )


@pytest.fixture()
def store(tmp_path: Path) -> TransientStore:
    return TransientStore(
        StorageConfig(incoming_dir=tmp_path / "in", outgoing_dir=tmp_path / "out")
    )


@pytest.fixture()
def residual_files(settings: Settings):
    """Return a callable listing files left in both storage roots."""

    def _list() -> list:
        found = []
        for root in (settings.incoming_dir, settings.outgoing_dir):
            if root.exists():
                found.extend(p for p in root.iterdir() if p.is_file())
        return found

    return _list


@pytest.fixture()
def app(settings: Settings):
    from pdf_shrinker.web.app import create_app

    return create_app(settings)


@pytest.fixture()
def client(app):
    """FastAPI TestClient with the lifespan (store, rewriter) started."""
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c
