#!/usr/bin/env python3
"""
Run the app server from a source checkout. The implementation lives in
static_app.server (src layout); this module re-exports the entry points so
`python main.py --root ...` works without installing the package.
"""
# Import the real implementation; support running from source without install (src layout)
try:
    from static_app.server import (  # type: ignore F401
        AppHandler,
        RequestDispatcher,
        create_server,
        find_free_port,
        main as _main,
    )
except ModuleNotFoundError:  # pragma: no cover - fallback for local runs
    import os
    import sys as _sys
    here = os.path.dirname(__file__)
    src = os.path.join(here, "src")
    if os.path.isdir(src) and src not in _sys.path:
        _sys.path.insert(0, src)
    from static_app.server import (  # type: ignore F401
        AppHandler,
        RequestDispatcher,
        create_server,
        find_free_port,
        main as _main,
    )

__all__ = [
    "AppHandler",
    "RequestDispatcher",
    "create_server",
    "find_free_port",
    "main",
]


def main(argv=None):
    return _main(argv)


if __name__ == "__main__":
    main()
