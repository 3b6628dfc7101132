"""Error taxonomy for the asset pipeline.

Every producer translates the failures of the library it wraps into one of
these, chaining the original exception, so callers only need to know about
``AssemblerError``.
"""


class AssemblerError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class ConfigurationError(AssemblerError):
    pass


class SourceReadError(AssemblerError):
    def __init__(self, filename: str, reason):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Cannot read {filename}: {reason}")


class ModuleResolutionError(AssemblerError):
    def __init__(self, specifier: str, requested_from: str):
        self.specifier = specifier
        self.requested_from = requested_from
        super().__init__(f"Cannot find module '{specifier}' from '{requested_from}'")


class StyleCompileError(AssemblerError):
    def __init__(self, filename: str, detail: str):
        self.filename = filename
        self.detail = detail
        super().__init__(f"{filename}: {detail}")


class TemplateCompileError(AssemblerError):
    def __init__(self, filename: str, detail: str):
        self.filename = filename
        self.detail = detail
        super().__init__(f"{filename}: {detail}")


class MissingMarkerError(AssemblerError):
    def __init__(self, marker: str):
        self.marker = marker
        super().__init__(f"Template has no {marker} marker to inject into")
