"""CommonJS bundler for the page script.

Walks the static ``require()`` graph of an entry module and emits one script
that defines a global ``require`` over all discovered modules. The bundle does
not run the entry by itself; the page assembler appends ``entry_require()``.
"""
from __future__ import annotations

import json
import os
from collections import deque
from typing import Callable, Dict, List, Optional

from static_app.errors import ModuleResolutionError, SourceReadError
from static_app.minifier import minify_js

PRELUDE = """var require = (function (modules, cache, aliases) {
  function load(name) {
    if (aliases.hasOwnProperty(name)) name = aliases[name];
    if (!cache[name]) {
      if (!modules[name]) {
        var err = new Error("Cannot find module '" + name + "'");
        err.code = "MODULE_NOT_FOUND";
        throw err;
      }
      var module = cache[name] = { exports: {} };
      modules[name][0].call(module.exports, function (x) {
        var id = modules[name][1][x];
        return load(id ? id : x);
      }, module, module.exports);
    }
    return cache[name].exports;
  }
  return load;
})({
"""
EPILOGUE = "\n}, {}, %s);\n"


def entry_alias(script_name: str) -> str:
    """Name the page uses to run the entry: its configured basename, however it resolves."""
    return "./" + os.path.basename(os.path.normpath(script_name))


def entry_require(script_name: str) -> str:
    """Statement that runs the bundled entry module once the bundle is loaded."""
    return ";require(" + json.dumps(entry_alias(script_name)) + ")"


# Tokens after which a "/" starts a regular expression literal rather than a division
REGEX_AFTER_PUNCT = set("(,=:[!&|?{};+-*%<>~^")
REGEX_AFTER_WORDS = {"return", "typeof", "case", "in", "of", "delete", "void", "throw", "new", "else", "do", "instanceof"}


def _skip_string(source: str, start: int, quote: str) -> int:
    """Index just past the closing quote (or the end of the line for an unterminated string)."""
    i = start + 1
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return n


def _skip_regex(source: str, start: int) -> int:
    i = start + 1
    n = len(source)
    in_class = False
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            return i
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            i += 1
            break
        i += 1
    while i < n and (source[i].isalnum() or source[i] == "_"):
        i += 1
    return i


def _regex_allowed(tokens) -> bool:
    if not tokens:
        return True
    kind, value = tokens[-1]
    if kind == "punct":
        return value in REGEX_AFTER_PUNCT
    return kind == "name" and value in REGEX_AFTER_WORDS


def tokenize(source: str) -> List[tuple]:
    """Split JavaScript into (kind, value) tokens, dropping comments and whitespace.

    Only as precise as dependency discovery needs: strings and template
    literals keep their raw contents, regex literals are skipped whole.
    """
    tokens: List[tuple] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
        elif source.startswith("//", i):
            end = source.find("\n", i)
            i = n if end < 0 else end
        elif source.startswith("/*", i):
            end = source.find("*/", i + 2)
            i = n if end < 0 else end + 2
        elif ch in "'\"`":
            end = _skip_string(source, i, ch)
            closed = end > i + 1 and source[end - 1] == ch
            value = source[i + 1:end - 1] if closed else source[i + 1:end]
            tokens.append(("template" if ch == "`" else "string", value))
            i = end
        elif ch == "/" and _regex_allowed(tokens):
            i = _skip_regex(source, i)
            tokens.append(("regex", ""))
        elif ch.isalnum() or ch in "_$":
            end = i
            while end < n and (source[end].isalnum() or source[end] in "_$"):
                end += 1
            tokens.append(("name", source[i:end]))
            i = end
        else:
            tokens.append(("punct", ch))
            i += 1
    return tokens


def _literal(token) -> Optional[str]:
    kind, value = token
    if kind == "string" or (kind == "template" and "${" not in value):
        return value
    return None


def find_requires(source: str) -> List[str]:
    """Specifiers of every `require("literal")` call outside comments and strings."""
    tokens = tokenize(source)
    seen = []
    for k in range(len(tokens) - 3):
        if tokens[k] != ("name", "require") or tokens[k + 1] != ("punct", "("):
            continue
        if k > 0 and tokens[k - 1] == ("punct", "."):
            continue
        specifier = _literal(tokens[k + 2])
        if specifier is None or tokens[k + 3] != ("punct", ")"):
            continue
        if specifier not in seen:
            seen.append(specifier)
    return seen
def _read(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SourceReadError(path, getattr(e, "strerror", None) or e) from e


def _resolve_directory(base: str) -> Optional[str]:
    manifest = os.path.join(base, "package.json")
    if os.path.isfile(manifest):
        try:
            with open(manifest, "r", encoding="utf-8") as f:
                main = json.load(f).get("main")
        except (OSError, ValueError, AttributeError):
            main = None
        if main:
            found = resolve_path(os.path.join(base, main), directories=False)
            if found:
                return found
    for index in ("index.js", "index.json"):
        candidate = os.path.join(base, index)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
    return None


def resolve_path(base: str, directories: bool = True) -> Optional[str]:
    """Resolve a path the way node does: exact file, .js, .json, then directory."""
    for candidate in (base, base + ".js", base + ".json"):
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
    if directories and os.path.isdir(base):
        return _resolve_directory(base)
    return None


def resolve_module(specifier: str, from_dir: str) -> Optional[str]:
    if specifier.startswith(("./", "../", "/")) or specifier in (".", ".."):
        return resolve_path(os.path.join(from_dir, specifier))
    current = os.path.abspath(from_dir)
    while True:
        found = resolve_path(os.path.join(current, "node_modules", specifier))
        if found:
            return found
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


class ScriptBundler:
    def __init__(self, entry_path: str, minify: bool = False):
        self.entry_path = entry_path
        self.minify = minify
        self._post: List[Callable[[str], str]] = []
        if minify:
            self.register_post(minify_js)

    def register_post(self, transform: Callable[[str], str]):
        """Add a text transform applied to the finished bundle, in registration order."""
        self._post.append(transform)

    def module_id(self, path: str) -> str:
        rel = os.path.relpath(path, os.path.dirname(os.path.abspath(self.entry_path)))
        rel = rel.replace(os.sep, "/")
        if not rel.startswith("../"):
            rel = "./" + rel
        return rel

    def aliases(self, entry: str) -> Dict[str, str]:
        """Map the name used by entry_require() onto the id the entry was bundled under."""
        alias = entry_alias(self.entry_path)
        entry_id = self.module_id(entry)
        return {} if alias == entry_id else {alias: entry_id}

    def collect(self) -> Dict[str, tuple]:
        """Return {absolute path: (source, {specifier: absolute path})} in discovery order."""
        entry = resolve_path(os.path.abspath(self.entry_path))
        if entry is None:
            raise ModuleResolutionError(self.entry_path, os.path.dirname(os.path.abspath(self.entry_path)))
        modules: Dict[str, tuple] = {}
        queue = deque([entry])
        while queue:
            path = queue.popleft()
            if path in modules:
                continue
            source = _read(path)
            deps = {}
            if not path.endswith(".json"):
                for specifier in find_requires(source):
                    found = resolve_module(specifier, os.path.dirname(path))
                    if found is None:
                        raise ModuleResolutionError(specifier, path)
                    deps[specifier] = found
                    if found not in modules:
                        queue.append(found)
            modules[path] = (source, deps)
        return modules

    def bundle(self) -> str:
        modules = self.collect()
        entries = []
        for path, (source, deps) in modules.items():
            if path.endswith(".json"):
                source = "module.exports = " + source.strip() + ";"
            dep_map = {name: self.module_id(target) for name, target in deps.items()}
            entries.append(
                json.dumps(self.module_id(path))
                + ": [function (require, module, exports) {\n"
                + source
                + "\n}, "
                + json.dumps(dep_map, sort_keys=True)
                + "]"
            )
        text = PRELUDE + ",\n".join(entries) + EPILOGUE % json.dumps(self.aliases(next(iter(modules))))
        for transform in self._post:
            text = transform(text)
        return text
