import io
import sqlite3
from pathlib import Path
from wsgiref.util import setup_testing_defaults

import pytest
from PIL import Image

from chatmedia.store import MessageStore


def _image_bytes(fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _image_bytes("JPEG")


@pytest.fixture
def db_path(tmp_path: Path, png_bytes: bytes, jpeg_bytes: bytes) -> Path:
    path = tmp_path / "messages.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE user_messages (id TEXT PRIMARY KEY, image_payload BLOB, audio_payload BLOB)"
    )
    conn.executemany(
        "INSERT INTO user_messages VALUES (?, ?, ?)",
        [
            ("png-msg", png_bytes, None),
            ("jpeg-msg", jpeg_bytes, None),
            ("junk-msg", b"definitely not an image", None),
            ("empty-msg", b"", b""),
            ("audio-msg", None, b"\xff\xf1\x50\x80fake-adts-frame"),
            ("text-msg", None, None),
        ],
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def store(db_path: Path) -> MessageStore:
    return MessageStore(db_path)


@pytest.fixture
def wsgi_get():
    """Call a WSGI app in-process; returns (status, headers, body)."""

    def _get(app, path: str) -> tuple[str, dict[str, str], bytes]:
        url_path, _, query = path.partition("?")
        environ: dict = {
            "REQUEST_METHOD": "GET",
            "PATH_INFO": url_path,
            "QUERY_STRING": query,
            "wsgi.input": io.BytesIO(),
        }
        setup_testing_defaults(environ)

        captured: dict = {}

        def _start_response(status, headers, exc_info=None):
            captured["status"] = status
            captured["headers"] = dict(headers)

        body = b"".join(app(environ, _start_response))
        return captured["status"], captured["headers"], body

    return _get
