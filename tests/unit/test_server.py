"""Unit tests for server.py, run against a live server on an ephemeral port"""

import gzip
import http.client
import threading

import pytest

from mdsite.core.utils.hashing import short_digest
from mdsite.server import make_server


INDEX = b"<html>" + b"hello " * 50 + b"</html>"


@pytest.fixture(name="server")
def server_fixture(tmp_path):
    """Serve a small site from tmp_path and yield a connection factory."""
    site = tmp_path / "site"
    (site / "img").mkdir(parents=True)
    (site / "index.html").write_bytes(INDEX)
    (site / "img" / "a.webp").write_bytes(b"RIFFxxxxWEBP")
    (tmp_path / "secret.txt").write_text("nope")

    httpd = make_server(site, 0)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    port = httpd.server_address[1]

    connections = []

    def _request(method, path, headers=None):
        conn = http.client.HTTPConnection("localhost", port, timeout=5)
        connections.append(conn)
        conn.request(method, path, headers=headers or {})
        return conn.getresponse()

    yield _request
    for conn in connections:
        conn.close()
    httpd.shutdown()
    httpd.server_close()


def test_get_root_serves_index(server):
    """/ maps to index.html with an ETag and caching headers."""
    resp = server("GET", "/")
    assert resp.status == 200
    assert resp.read() == INDEX
    assert resp.getheader("ETag") == f'"{short_digest(INDEX)}"'
    assert resp.getheader("Content-Type") == "text/html"
    assert resp.getheader("Cache-Control") == "public, must-revalidate"


def test_get_gzip_for_text(server):
    """Text responses are gzipped when the client accepts it."""
    resp = server("GET", "/index.html", {"Accept-Encoding": "gzip"})
    assert resp.getheader("Content-Encoding") == "gzip"
    assert gzip.decompress(resp.read()) == INDEX


def test_get_no_gzip_for_images(server):
    """Binary types are sent as-is."""
    resp = server("GET", "/img/a.webp", {"Accept-Encoding": "gzip"})
    assert resp.getheader("Content-Encoding") is None
    assert resp.read() == b"RIFFxxxxWEBP"


def test_if_none_match_returns_304(server):
    """A matching ETag yields 304 with no body."""
    etag = server("GET", "/").getheader("ETag")
    resp = server("GET", "/", {"If-None-Match": etag})
    assert resp.status == 304
    assert resp.read() == b""


def test_head_has_no_body(server):
    """HEAD sends the GET headers without a body."""
    resp = server("HEAD", "/index.html")
    assert resp.status == 200
    assert resp.getheader("Content-Length") == str(len(INDEX))
    assert resp.read() == b""


def test_missing_file_is_404(server):
    resp = server("GET", "/nope.html")
    assert resp.status == 404
    assert b"404 Not Found" in resp.read()


def test_path_outside_root_is_404(server):
    """Traversal out of the served directory is not found."""
    resp = server("GET", "/../secret.txt")
    assert resp.status == 404
    resp.read()


def test_undecodable_path_is_400(server):
    """Percent-escapes that are not UTF-8 are rejected."""
    resp = server("GET", "/%ff.html")
    assert resp.status == 400
    resp.read()


def test_post_is_405(server):
    """Methods other than GET and HEAD are not allowed."""
    resp = server("POST", "/index.html")
    assert resp.status == 405
    assert resp.getheader("Allow") == "GET, HEAD"
    resp.read()
