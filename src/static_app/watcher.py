import os

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from static_app.config import RELOAD_EXTENSIONS


class SourceChangeHandler(FileSystemEventHandler):
    """Drops the assembler's cached page whenever a source file changes."""

    def __init__(self, assembler, extensions=RELOAD_EXTENSIONS):
        super().__init__()
        self.assembler = assembler
        self.extensions = tuple(extensions)

    def is_source(self, path) -> bool:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.splitext(path)[1].lower() in self.extensions

    def on_any_event(self, event):
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        changed = [p for p in paths if p and self.is_source(p)]
        if not changed:
            return
        print(f"[WATCH] {event.event_type}: {changed[0]}, page will be rebuilt")
        self.assembler.invalidate()


def watch_sources(root: str, assembler) -> Observer:
    observer = Observer()
    observer.schedule(SourceChangeHandler(assembler), root, recursive=True)
    observer.daemon = True
    observer.start()
    print(f"[WATCH] Watching {os.path.abspath(root)} for changes...")
    return observer
