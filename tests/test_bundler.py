import json
import os
import shutil
import subprocess
import tempfile
import unittest

from static_app.bundler import ScriptBundler, entry_require, find_requires, resolve_module
from static_app.errors import ModuleResolutionError, SourceReadError


def write(root, rel, text):
    path = os.path.join(root, rel)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


class ScriptBundlerTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def test_bundle_contains_entry_and_transitive_dependencies(self):
        entry = write(self.root, "app.js", "var util = require('./util');\nutil.greet('world');\n")
        write(self.root, "util.js", "var fmt = require(\"./lib/format.js\");\nexports.greet = function (n) { return fmt(n); };\n")
        write(self.root, "lib/format.js", "module.exports = function (n) { return 'hello ' + n; };\n")

        bundle = ScriptBundler(entry).bundle()

        self.assertTrue(bundle.startswith("var require = "))
        self.assertIn('"./app.js": [function (require, module, exports) {', bundle)
        self.assertIn('"./util.js": [function', bundle)
        self.assertIn('"./lib/format.js": [function', bundle)
        self.assertIn('{"./util": "./util.js"}', bundle)
        self.assertIn("util.greet('world');", bundle)
        # The bundle defines modules but must not run the entry on its own
        self.assertNotIn('require("./app.js")', bundle)

    def test_each_module_is_bundled_once_even_with_cycles(self):
        entry = write(self.root, "a.js", "require('./b');\n")
        write(self.root, "b.js", "require('./a');\n")
        bundle = ScriptBundler(entry).bundle()
        self.assertEqual(bundle.count('"./a.js": [function'), 1)
        self.assertEqual(bundle.count('"./b.js": [function'), 1)

    def test_missing_dependency_raises_module_resolution_error(self):
        entry = write(self.root, "app.js", "require('./nope');\n")
        with self.assertRaises(ModuleResolutionError) as ctx:
            ScriptBundler(entry).bundle()
        self.assertEqual(ctx.exception.specifier, "./nope")
        self.assertEqual(ctx.exception.requested_from, entry)

    def test_missing_entry_raises_module_resolution_error(self):
        with self.assertRaises(ModuleResolutionError):
            ScriptBundler(os.path.join(self.root, "missing.js")).bundle()

    def test_entry_may_be_a_directory_with_index(self):
        write(self.root, "src/index.js", "window.loaded = true;\n")
        bundle = ScriptBundler(os.path.join(self.root, "src")).bundle()
        self.assertIn("window.loaded = true;", bundle)

    def test_node_modules_and_package_main_are_resolved(self):
        entry = write(self.root, "app/app.js", "var pad = require('leftpad');\n")
        write(self.root, "node_modules/leftpad/package.json", json.dumps({"main": "lib/pad.js"}))
        write(self.root, "node_modules/leftpad/lib/pad.js", "module.exports = function () {};\n")
        bundle = ScriptBundler(entry).bundle()
        self.assertIn('"../node_modules/leftpad/lib/pad.js": [function', bundle)
        self.assertIn('{"leftpad": "../node_modules/leftpad/lib/pad.js"}', bundle)

    def test_json_modules_export_their_data(self):
        entry = write(self.root, "app.js", "var cfg = require('./config.json');\n")
        write(self.root, "config.json", '{"debug": true}\n')
        bundle = ScriptBundler(entry).bundle()
        self.assertIn('module.exports = {"debug": true};', bundle)

    def test_commented_out_requires_are_ignored(self):
        source = "// require('./gone')\n/* require('./also-gone') */\nrequire('./here');\n"
        self.assertEqual(find_requires(source), ["./here"])

    def test_member_require_calls_are_not_dependencies(self):
        self.assertEqual(find_requires("loader.require('x'); require('./y');"), ["./y"])

    def test_trailing_line_comments_hide_requires(self):
        self.assertEqual(find_requires("var a = 1; // require('./gone')\n"), [])

    def test_comment_markers_inside_strings_do_not_hide_requires(self):
        source = "var u = 'http://x/*'; var b = require('./b'); var v = '*/';"
        self.assertEqual(find_requires(source), ["./b"])
        self.assertEqual(find_requires('var url = "http://cdn"; require("./k");'), ["./k"])

    def test_requires_inside_strings_and_regexes_are_ignored(self):
        source = (
            "var s = \"require('./in-string')\";\n"
            "var re = /require\\('x'\\)/g;\n"
            "var t = `require('./in-template')`;\n"
            "var half = total / 2; var y = require('./y'); var q = a / b;\n"
            "var z = require(`./z`);\n"
        )
        self.assertEqual(find_requires(source), ["./y", "./z"])

    def test_minify_registers_a_size_reducing_post_pass(self):
        entry = write(
            self.root,
            "app.js",
            "function  add ( a , b )  {\n\n    // sum\n    return a + b;\n}\n\nadd( 1 , 2 );\n",
        )
        plain = ScriptBundler(entry).bundle()
        small = ScriptBundler(entry, minify=True).bundle()
        self.assertLess(len(small), len(plain))
        self.assertIn("return a+b", small)

    def test_post_transforms_run_in_registration_order(self):
        entry = write(self.root, "app.js", "x();\n")
        bundler = ScriptBundler(entry)
        bundler.register_post(lambda text: text + "/*one*/")
        bundler.register_post(lambda text: text + "/*two*/")
        self.assertTrue(bundler.bundle().endswith("/*one*//*two*/"))

    def test_resolve_module_prefers_exact_file_then_js(self):
        write(self.root, "util.js", "")
        self.assertEqual(resolve_module("./util", self.root), os.path.join(self.root, "util.js"))
        self.assertIsNone(resolve_module("./other", self.root))

    def test_entry_require_uses_basename(self):
        self.assertEqual(entry_require("public/app.js"), ';require("./app.js")')

    def _run_with_node(self, entry_path, script_name):
        node = shutil.which("node")
        if not node:
            self.skipTest("node is not installed in this environment")
        page_script = os.path.join(self.root, "page-script.js")
        with open(page_script, "w", encoding="utf-8") as f:
            f.write(ScriptBundler(entry_path).bundle() + entry_require(script_name) + "\n")
        proc = subprocess.run([node, page_script], stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        return proc.stdout.strip()

    def test_entry_ids_without_extension_are_aliased(self):
        write(self.root, "src/index.js", "console.log(require('./parts/name'));\n")
        write(self.root, "src/parts/name.js", "module.exports = 'from-index';\n")
        write(self.root, "public/script.js", "console.log('from-script');\n")

        dir_bundle = ScriptBundler(os.path.join(self.root, "src")).bundle()
        self.assertIn('}, {}, {"./src": "./src/index.js"});', dir_bundle)
        self.assertEqual(entry_require("src"), ';require("./src")')

        bare_bundle = ScriptBundler(os.path.join(self.root, "public", "script")).bundle()
        self.assertIn('}, {}, {"./script": "./script.js"});', bare_bundle)
        self.assertEqual(entry_require("public/script"), ';require("./script")')

    def test_plain_entry_needs_no_alias(self):
        entry = write(self.root, "app.js", "x();\n")
        self.assertTrue(ScriptBundler(entry).bundle().endswith("}, {}, {});\n"))

    def test_bundle_and_trailer_run_for_directory_entry(self):
        write(self.root, "src/index.js", "console.log(require('./parts/name'));\n")
        write(self.root, "src/parts/name.js", "module.exports = 'from-index';\n")
        self.assertEqual(self._run_with_node(os.path.join(self.root, "src"), "src"), "from-index")

    def test_bundle_and_trailer_run_for_extensionless_entry(self):
        write(self.root, "public/script.js", "console.log(require('./data.json').name);\n")
        write(self.root, "public/data.json", '{"name": "from-script"}')
        entry = os.path.join(self.root, "public", "script")
        self.assertEqual(self._run_with_node(entry, "public/script"), "from-script")

    def test_invalid_utf8_source_raises_source_read_error(self):
        entry = os.path.join(self.root, "app.js")
        with open(entry, "wb") as f:
            f.write(b"var s = '\xff';\n")
        with self.assertRaises(SourceReadError) as ctx:
            ScriptBundler(entry).bundle()
        self.assertEqual(ctx.exception.filename, entry)


if __name__ == "__main__":
    unittest.main()
