import os
from dataclasses import dataclass

from static_app.errors import ConfigurationError

# Source extensions whose change makes the cached page stale
RELOAD_EXTENSIONS = (
    ".css",
    ".scss",
    ".sass",
    ".html",
    ".htm",
    ".tpl",
    ".j2",
    ".jinja",
    ".jinja2",
    ".pug",
    ".jade",
    ".js",
    ".json",
)


@dataclass(frozen=True)
class AppConfig:
    root: str
    host: str = "0.0.0.0"
    port: int = 3000
    index: str = "views/index.html"
    script: str = "public/script.js"
    style: str = "public/style.scss"
    public: str = "public"
    minify: bool = False
    path: str = "/"
    strict_markers: bool = False
    watch: bool = False

    def resolve(self, name: str) -> str:
        """Join the root with one of the path options (script, style, index, public)."""
        return os.path.join(self.root, getattr(self, name))

    def validate(self):
        if not self.root:
            raise ConfigurationError("root must be set")
        for name in ("script", "style", "index"):
            if not getattr(self, name):
                raise ConfigurationError(f"{name} must be set")
        # The script entry is resolved by the bundler, which also knows about index.js etc.
        for name in ("style", "index"):
            full = self.resolve(name)
            if not os.path.isfile(full):
                raise ConfigurationError(f"{name} source {full} does not exist")

    @classmethod
    def from_args(cls, args) -> "AppConfig":
        return cls(
            root=args.root,
            host=args.host,
            port=args.port,
            index=args.index,
            script=args.script,
            style=args.style,
            public=args.public,
            minify=args.minify,
            path=args.path,
            strict_markers=args.strict_markers,
            watch=args.watch,
        )
