#!/usr/bin/env python3
import argparse
import contextlib
import functools
import gzip
import io
import mimetypes
import os
import socket
import sys
from dataclasses import dataclass, field
from http.server import ThreadingHTTPServer, SimpleHTTPRequestHandler
from typing import Callable, Dict, Optional

from static_app.assembler import PageAssembler
from static_app.config import AppConfig
from static_app.errors import AssemblerError

# Serves the assembled single page at one path and the public directory for
# everything else:
# - The page is built once and served from the assembler's cache
# - Text assets from the public root are compressed on the fly (br/gzip)
# - Build failures become a 500 instead of a partial page

COMPRESSIBLE_EXTENSIONS = ('.html', '.htm', '.css', '.js', '.mjs', '.json', '.svg')


@dataclass(frozen=True)
class PageResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class RequestDispatcher:
    def __init__(self, assembler: PageAssembler, request_path: str = "/"):
        self.assembler = assembler
        self.request_path = request_path

    def matches(self, request_path: str) -> bool:
        return request_path == self.request_path

    def handle(self, request_path: str, next_handler: Callable[[str], Optional[PageResponse]]):
        """Serve the page for the configured path, otherwise defer to next_handler.

        Build errors are not caught here; they belong to whoever called us.
        """
        if not self.matches(request_path):
            return next_handler(request_path)
        page = self.assembler.render().result()
        body = page.encode("utf-8")
        return PageResponse(
            status=200,
            headers={
                "Content-Type": "text/html",
                "Content-Length": str(len(body)),
            },
            body=body,
        )


def _pass(request_path: str) -> None:
    return None


class AppHandler(SimpleHTTPRequestHandler):
    # Extend MIME map for common modern types
    extensions_map = {
        **getattr(SimpleHTTPRequestHandler, "extensions_map", {}),
        ".js": "application/javascript",
        ".mjs": "application/javascript",
        ".json": "application/json",
        ".wasm": "application/wasm",
        "": "application/octet-stream",
    }

    def __init__(self, *args, dispatcher: RequestDispatcher = None, **kwargs):
        # Must be set before the base class starts handling the request
        self.dispatcher = dispatcher
        super().__init__(*args, **kwargs)

    def log_message(self, fmt, *args):
        sys.stdout.write("[HTTP] " + (fmt % args) + "\n")

    def _request_path(self) -> str:
        return (self.path or "").split('?', 1)[0]

    def _dispatch(self, head_only: bool = False) -> bool:
        """Returns True when the request was answered by the page dispatcher."""
        requested = self._request_path()
        try:
            response = self.dispatcher.handle(requested, _pass)
        except AssemblerError as e:
            self.log_error("Failed to render %s: %s", requested, e)
            self.send_error(500, "Page build failed", str(e))
            return True
        except Exception as e:
            self.log_error("Unexpected error rendering %s: %r", requested, e)
            self.send_error(500, "Page build failed")
            return True
        if response is None:
            return False
        self.send_response(response.status)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.send_header("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
        self.end_headers()
        if not head_only:
            self.wfile.write(response.body)
        return True

    def _serve_compressed(self) -> bool:
        accept = self.headers.get('Accept-Encoding', '') or ''
        fs_path = self.translate_path(self._request_path())
        if not os.path.isfile(fs_path):
            return False
        _, ext = os.path.splitext(fs_path)
        if ext.lower() not in COMPRESSIBLE_EXTENSIONS:
            return False
        encoding = None
        if 'br' in accept:
            encoding = 'br'
        elif 'gzip' in accept:
            encoding = 'gzip'
        if encoding is None:
            return False
        with open(fs_path, 'rb') as f:
            raw = f.read()
        if encoding == 'br':
            import brotli
            data = brotli.compress(raw)
        else:
            buf = io.BytesIO()
            with gzip.GzipFile(fileobj=buf, mode='wb', compresslevel=6) as gz:
                gz.write(raw)
            data = buf.getvalue()
        ctype = self.extensions_map.get(ext.lower()) or mimetypes.guess_type(fs_path)[0] or 'application/octet-stream'
        self.send_response(200)
        self.send_header('Content-Type', ctype)
        self.send_header('Content-Encoding', encoding)
        self.send_header('Vary', 'Accept-Encoding')
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)
        return True

    def do_GET(self):
        if self._dispatch():
            return
        if self._serve_compressed():
            return
        return super().do_GET()

    def do_HEAD(self):
        if self._dispatch(head_only=True):
            return
        return super().do_HEAD()

    def do_POST(self):
        if self._dispatch():
            return
        self.send_error(405, "Method not allowed")


def make_handler(dispatcher: RequestDispatcher, public_root: str):
    return functools.partial(AppHandler, dispatcher=dispatcher, directory=public_root)


def find_free_port(preferred: int) -> int:
    if preferred:
        return preferred
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("", 0))
        return s.getsockname()[1]


def create_server(config: AppConfig, assembler: PageAssembler, port: Optional[int] = None) -> ThreadingHTTPServer:
    dispatcher = RequestDispatcher(assembler, config.path)
    handler = make_handler(dispatcher, config.resolve("public"))
    return ThreadingHTTPServer((config.host, config.port if port is None else port), handler)


def run_server(config: AppConfig, assembler: PageAssembler):
    port = find_free_port(config.port)
    httpd = create_server(config, assembler, port)
    observer = None
    if config.watch:
        from static_app.watcher import watch_sources
        observer = watch_sources(config.root, assembler)
    host = config.host
    where = f"http://{host if host not in ('0.0.0.0', '') else 'localhost'}:{port}{config.path}"
    print(f"\nServing app from: {os.path.abspath(config.root)}")
    print(f"URL: {where}")
    print("Press Ctrl+C to stop.\n")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        httpd.server_close()
        if observer is not None:
            observer.stop()
            observer.join(timeout=2)
        assembler.close()


def emit_page(assembler: PageAssembler, out=None) -> int:
    out = out or sys.stdout
    try:
        page = assembler.render_page()
    except AssemblerError as e:
        print(f"[BUILD] {e}", file=sys.stderr)
        return 1
    finally:
        assembler.close()
    out.write(page)
    out.flush()
    return 0


def build_parser() -> argparse.ArgumentParser:
    defaults = AppConfig(root="")
    parser = argparse.ArgumentParser(description="Fast static apps: bundle, compile and serve a single page.")
    parser.add_argument("-r", "--root", required=True, help="Project root all other paths are relative to")
    parser.add_argument("-H", "--host", default=defaults.host, help=f"Host/IP to bind (default: {defaults.host})")
    parser.add_argument("-p", "--port", type=int, default=defaults.port, help=f"Port to bind, 0 to auto-pick (default: {defaults.port})")
    parser.add_argument("--index", default=defaults.index, help=f"HTML/Jinja2/Pug template (default: {defaults.index})")
    parser.add_argument("--script", default=defaults.script, help=f"Script entry module (default: {defaults.script})")
    parser.add_argument("--style", default=defaults.style, help=f"CSS/SCSS/Sass stylesheet (default: {defaults.style})")
    parser.add_argument("--public", default=defaults.public, help=f"Static file directory (default: {defaults.public})")
    parser.add_argument("--path", default=defaults.path, help=f"Request path serving the page (default: {defaults.path})")
    parser.add_argument("--minify", action="store_true", help="Minify the inlined script and style")
    parser.add_argument("--out", action="store_true", help="Write the page to stdout and exit")
    parser.add_argument("--watch", action="store_true", help="Rebuild the page when sources change")
    parser.add_argument("--strict-markers", action="store_true", help="Fail when the template lacks </head> or </body>")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = AppConfig.from_args(args)
    try:
        config.validate()
    except AssemblerError as e:
        print(f"[BUILD] {e}", file=sys.stderr)
        sys.exit(2)

    assembler = PageAssembler(config)
    if args.out:
        sys.exit(emit_page(assembler))
    run_server(config, assembler)


if __name__ == "__main__":
    main()
