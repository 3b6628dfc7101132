import argparse, pathlib
from rcssmin import cssmin
from rjsmin import jsmin


def minify_js(code: str) -> str:
    return jsmin(code)


def minify_css(css: str) -> str:
    return cssmin(css)


MINIFIERS = {
    ".js": minify_js,
    ".css": minify_css,
}


def minify_file(src_path: pathlib.Path, dst_path: pathlib.Path):
    minify = MINIFIERS[src_path.suffix.lower()]
    dst_path.parent.mkdir(parents=True, exist_ok=True)
    with src_path.open("r", encoding="utf-8") as f:
        code = f.read()
    with dst_path.open("w", encoding="utf-8") as f:
        f.write(minify(code))


def minified_name(src_path: pathlib.Path) -> str:
    return src_path.stem + ".min" + src_path.suffix


def main(argv=None):
    p = argparse.ArgumentParser(description="Minify JS with rjsmin and CSS with rcssmin")
    p.add_argument("inputs", nargs="+", help="JS/CSS files or directories")
    p.add_argument("-o", "--out", default="dist", help="Output dir for minified files")
    args = p.parse_args(argv)

    out_root = pathlib.Path(args.out)
    for inp in args.inputs:
        pth = pathlib.Path(inp)
        if pth.is_dir():
            for src in sorted(pth.rglob("*")):
                if not src.is_file() or src.suffix.lower() not in MINIFIERS or src.name.endswith((".min.js", ".min.css")):
                    continue
                rel = src.relative_to(pth)
                minify_file(src, out_root / rel.parent / minified_name(src))
        elif pth.suffix.lower() in MINIFIERS:
            minify_file(pth, out_root / minified_name(pth))
        else:
            p.error(f"unsupported file type: {pth} (expected one of {', '.join(MINIFIERS)})")


if __name__ == "__main__":
    main()
