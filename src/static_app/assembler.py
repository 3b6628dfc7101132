"""Concurrent page build and the single-page cache.

``PageAssembler.render()`` always hands back a ``concurrent.futures.Future``:
already resolved on a cache hit, otherwise the future of the one build that is
in flight. The three producers run on a small thread pool and are joined with
fail-fast semantics; the first failure fails the whole render and no partial
page is ever cached.
"""
from __future__ import annotations

import sys
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Optional

from static_app.bundler import ScriptBundler, entry_require
from static_app.config import AppConfig
from static_app.errors import MissingMarkerError
from static_app.styles import StyleCompiler
from static_app.templates import TemplateRenderer

STYLE_MARKER = "</head>"
SCRIPT_MARKER = "</body>"


def _inject(html: str, marker: str, block: str, strict: bool) -> str:
    if marker not in html:
        if strict:
            raise MissingMarkerError(marker)
        print(f"[BUILD] Warning: template has no {marker}, dropping injected block", file=sys.stderr)
        return html
    return html.replace(marker, block + marker, 1)


def assemble_page(script_text: str, invocation: str, style_text: str, template_text: str, strict: bool = False) -> str:
    """Inline style before the first </head> and script before the first </body>."""
    # A literal "</script" inside the bundle would end the inline element early
    script_text = script_text.replace("</script", "<\\/script")
    style = "<style>" + style_text + "</style>"
    script = "<script>" + script_text + invocation + "</script>"
    page = _inject(template_text, STYLE_MARKER, style, strict)
    return _inject(page, SCRIPT_MARKER, script, strict)


def _resolved(page: str) -> Future:
    future: Future = Future()
    future.set_result(page)
    return future


class PageAssembler:
    def __init__(self, config: AppConfig, script=None, style=None, template=None):
        self.config = config
        self.script = script or ScriptBundler(config.resolve("script"), minify=config.minify)
        self.style = style or StyleCompiler(config.resolve("style"), minify=config.minify)
        self.template = template or TemplateRenderer(config.resolve("index"))
        self._executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="page-build")
        self._lock = threading.Lock()
        self._cached_page: Optional[str] = None
        self._in_flight: Optional[Future] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def render(self) -> Future:
        with self._lock:
            if self._cached_page is not None:
                return _resolved(self._cached_page)
            if self._in_flight is not None:
                return self._in_flight
            future: Future = Future()
            future.set_running_or_notify_cancel()
            self._in_flight = future
            generation = self._generation
        threading.Thread(
            target=self._build, args=(future, generation), name="page-build-join", daemon=True
        ).start()
        return future

    def render_page(self, timeout: Optional[float] = None) -> str:
        return self.render().result(timeout)

    def invalidate(self):
        """Forget the cached page; the next render() starts a fresh build."""
        with self._lock:
            self._cached_page = None
            self._in_flight = None
            self._generation += 1

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _build(self, future: Future, generation: int):
        try:
            page = self._run_producers()
        except Exception as e:
            with self._lock:
                if self._in_flight is future:
                    self._in_flight = None
            print(f"[BUILD] Failed: {e}", file=sys.stderr)
            future.set_exception(e)
            return
        with self._lock:
            if self._in_flight is future:
                self._in_flight = None
            if generation == self._generation:
                self._cached_page = page
        print(f"[BUILD] Assembled page ({len(page.encode('utf-8'))} bytes)", file=sys.stderr)
        future.set_result(page)

    def _run_producers(self) -> str:
        jobs = [
            self._executor.submit(self.script.bundle),
            self._executor.submit(self.style.compile),
            self._executor.submit(self.template.render),
        ]
        done, pending = wait(jobs, return_when=FIRST_EXCEPTION)
        for job in jobs:
            if job in done and job.exception() is not None:
                for other in pending:
                    other.cancel()
                raise job.exception()
        script_text, style_text, template_text = (job.result() for job in jobs)
        return assemble_page(
            script_text,
            entry_require(self.config.script),
            style_text,
            template_text,
            strict=self.config.strict_markers,
        )
