"""Development file server with ETag revalidation and gzip"""

import gzip
import logging
import mimetypes
from functools import partial
from html import escape
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

from mdsite.core.utils.hashing import short_digest


logger = logging.getLogger(__name__)

COMPRESSIBLE = {"application/json", "application/javascript", "application/xml", "image/svg+xml"}

ERROR_PAGE = """<!DOCTYPE html>
<html>
    <head>
        <meta charset="UTF-8">
        <style>body {{ font-family: sans-serif; }} main {{ margin: auto; padding: 20px; width: fit-content; }}</style>
    </head>
    <body>
        <main>
            <h1>{title}</h1>
            {detail}
        </main>
    </body>
</html>
"""


class SiteRequestHandler(BaseHTTPRequestHandler):
    """Serves files under `directory`; GET and HEAD only."""

    def __init__(self, *args, directory: Path, **kwargs):
        self.directory = directory
        super().__init__(*args, **kwargs)

    def log_message(self, format: str, *args) -> None:
        pass

    def _log(self, outcome: str) -> None:
        logger.info("server: %s %s => %s", self.command, self.path, outcome)

    def _send_error_page(self, status: int, title: str, detail: str, headers: dict = None) -> None:
        body = ERROR_PAGE.format(title=escape(title), detail=escape(detail)).encode("utf-8")
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _method_not_allowed(self) -> None:
        self._log("405 method not allowed")
        self._send_error_page(
            405, "405 Method Not Allowed", f"The {self.command} method is not supported",
            {"Allow": "GET, HEAD"},
        )

    do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = _method_not_allowed

    def do_HEAD(self) -> None:
        self.do_GET()

    def do_GET(self) -> None:
        raw_path = urlsplit(self.path).path
        try:
            path = unquote(raw_path, errors="strict")
        except UnicodeDecodeError:
            self._log("400 bad request: could not decode path")
            self._send_error_page(400, "400 Bad Request", f"The path could not be decoded: {raw_path!r}")
            return
        if path == "/":
            path = "/index.html"

        root = self.directory.resolve()
        target = (root / path.lstrip("/")).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            self._log("404 not found")
            self._send_error_page(404, "404 Not Found", f"Requested: {raw_path!r}")
            return

        try:
            contents = target.read_bytes()
        except OSError as e:
            self._log(f"500 internal server error: {e}")
            self._send_error_page(500, "500 Internal Server Error", str(e))
            return

        etag = f'"{short_digest(contents)}"'
        if self.headers.get("If-None-Match") == etag:
            self._log(f"304 not modified, etag {etag}")
            self.send_response(304)
            self.send_header("ETag", etag)
            self.end_headers()
            return

        content_type, _ = mimetypes.guess_type(target.name)
        compress = bool(content_type) and (content_type.startswith("text/") or content_type in COMPRESSIBLE)
        if compress and "gzip" in self.headers.get("Accept-Encoding", ""):
            contents = gzip.compress(contents, compresslevel=1)
        else:
            compress = False

        self.send_response(200)
        self.send_header("Cache-Control", "public, must-revalidate")
        self.send_header("ETag", etag)
        self.send_header("Vary", "Accept-Encoding")
        if content_type:
            self.send_header("Content-Type", content_type)
        if compress:
            self.send_header("Content-Encoding", "gzip")
        self.send_header("Content-Length", str(len(contents)))
        self.end_headers()
        self._log(f"200 okay{', gzipped' if compress else ''}, {len(contents)} bytes, content-type: {content_type}")
        if self.command != "HEAD":
            self.wfile.write(contents)


def make_server(directory: Path, port: int, host: str = "localhost") -> ThreadingHTTPServer:
    handler = partial(SiteRequestHandler, directory=directory)
    return ThreadingHTTPServer((host, port), handler)


def serve(directory: Path, port: int, host: str = "localhost") -> None:
    """Serve directory until interrupted."""
    httpd = make_server(directory, port, host)
    logger.info("server: listening on %s:%d", host, httpd.server_address[1])
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        httpd.server_close()
