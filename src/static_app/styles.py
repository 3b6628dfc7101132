import enum
import os

import sass

from static_app.errors import SourceReadError, StyleCompileError
from static_app.minifier import minify_css

# Bundled mixin library, importable from any stylesheet as `@import "vendor";`
STYLELIB_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "stylelib")


def _passthrough(source: str, filename: str, include_paths) -> str:
    return source


def _compile_sass(source: str, filename: str, include_paths, indented: bool = False) -> str:
    try:
        return sass.compile(
            string=source,
            include_paths=list(include_paths),
            output_style="expanded",
            indented=indented,
        )
    except sass.CompileError as e:
        raise StyleCompileError(filename, str(e).strip()) from e


def _compile_scss(source: str, filename: str, include_paths) -> str:
    return _compile_sass(source, filename, include_paths)


def _compile_indented(source: str, filename: str, include_paths) -> str:
    return _compile_sass(source, filename, include_paths, indented=True)


class StyleFormat(enum.Enum):
    CSS = "css"
    SCSS = "scss"
    SASS = "sass"

    @classmethod
    def for_path(cls, path: str) -> "StyleFormat":
        ext = os.path.splitext(path)[1].lower()
        return _EXTENSIONS.get(ext, cls.CSS)

    @property
    def transform(self):
        return _TRANSFORMS[self]


_EXTENSIONS = {
    ".scss": StyleFormat.SCSS,
    ".sass": StyleFormat.SASS,
}

_TRANSFORMS = {
    StyleFormat.CSS: _passthrough,
    StyleFormat.SCSS: _compile_scss,
    StyleFormat.SASS: _compile_indented,
}


class StyleCompiler:
    def __init__(self, style_path: str, minify: bool = False, include_paths=()):
        self.style_path = style_path
        self.minify = minify
        self.include_paths = tuple(include_paths)

    @property
    def format(self) -> StyleFormat:
        return StyleFormat.for_path(self.style_path)

    def search_path(self):
        return (os.path.dirname(os.path.abspath(self.style_path)),) + self.include_paths + (STYLELIB_DIR,)

    def compile(self) -> str:
        try:
            with open(self.style_path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise SourceReadError(self.style_path, getattr(e, "strerror", None) or e) from e
        css = self.format.transform(source, self.style_path, self.search_path())
        if self.minify:
            css = minify_css(css)
        return css
