import enum
import os

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, FunctionLoader, StrictUndefined, TemplateError

from static_app.errors import SourceReadError, TemplateCompileError


def _describe(e: TemplateError) -> str:
    lineno = getattr(e, "lineno", None)
    detail = e.message or e.__class__.__name__
    return f"line {lineno}: {detail}" if lineno else detail


def _render_jinja(source: str, filename: str) -> str:
    name = os.path.basename(filename)

    def load_entry(requested):
        # The entry is served from the text already read so we never read it twice
        if requested == name:
            return source, filename, lambda: True
        return None

    env = Environment(
        loader=ChoiceLoader([FunctionLoader(load_entry), FileSystemLoader(os.path.dirname(filename))]),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    try:
        return env.get_template(name).render()
    except TemplateError as e:
        raise TemplateCompileError(filename, _describe(e)) from e


def _passthrough(source: str, filename: str) -> str:
    return source


def _render_pug(source: str, filename: str) -> str:
    from pypugjs.ext.jinja import Compiler
    from pypugjs.utils import process

    try:
        converted = process(source, filename=filename, compiler=Compiler)
    except Exception as e:
        raise TemplateCompileError(filename, str(e)) from e
    return _render_jinja(converted, filename)


class TemplateFormat(enum.Enum):
    HTML = "html"
    JINJA = "jinja"
    PUG = "pug"

    @classmethod
    def for_path(cls, path: str) -> "TemplateFormat":
        ext = os.path.splitext(path)[1].lower()
        return _EXTENSIONS.get(ext, cls.HTML)

    @property
    def transform(self):
        return _TRANSFORMS[self]


_EXTENSIONS = {
    ".tpl": TemplateFormat.JINJA,
    ".j2": TemplateFormat.JINJA,
    ".jinja": TemplateFormat.JINJA,
    ".jinja2": TemplateFormat.JINJA,
    ".pug": TemplateFormat.PUG,
    ".jade": TemplateFormat.PUG,
}

_TRANSFORMS = {
    TemplateFormat.HTML: _passthrough,
    TemplateFormat.JINJA: _render_jinja,
    TemplateFormat.PUG: _render_pug,
}


class TemplateRenderer:
    def __init__(self, index_path: str):
        self.index_path = index_path

    @property
    def format(self) -> TemplateFormat:
        return TemplateFormat.for_path(self.index_path)

    def render(self) -> str:
        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise SourceReadError(self.index_path, getattr(e, "strerror", None) or e) from e
        return self.format.transform(source, self.index_path)
