#!/usr/bin/env python3
"""
End-to-end CLI tests.

Each test writes a bloaty CSV (and optionally a Cargo.lock / config) into a
temporary directory, runs main() and checks the exit code and the metafile.
"""

import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bloaty_metafile.cli import main, parse_args
from bloaty_metafile.config import Config, build_config, default_lock
from bloaty_metafile.errors import ConfigError, DepthBoundError

CSV_TEXT = (
    "sections,symbols,vmsize,filesize\n"
    ".text,crate_a::foo::bar,100,100\n"
    ".text,crate_a::foo::baz,50,50\n"
    ".rodata,crate_b::qux,30,30\n"
)

LOCK = """\
[[package]]
name = "app"
version = "0.1.0"
dependencies = ["crate_a 2.0.0", "crate_b"]

[[package]]
name = "crate_a"
version = "1.0.0"

[[package]]
name = "crate_a"
version = "2.0.0"
dependencies = ["crate_a 1.0.0"]

[[package]]
name = "crate_b"
version = "0.3.0"

[[package]]
name = "broken"
"""


class CliTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.csv = self.tmp / "app.csv"
        self.csv.write_text(CSV_TEXT, encoding="utf-8")
        self.out = self.tmp / "meta.json"
        self.no_lock = str(self.tmp / "Cargo.lock")

    def tearDown(self):
        self._tmp.cleanup()

    def run_main(self, *extra):
        argv = ["--input", str(self.csv), "--output", str(self.out)] + list(extra)
        return main(argv)

    def load(self):
        return json.loads(self.out.read_text(encoding="utf-8"))


class TestMain(CliTestCase):

    def test_converts_csv(self):
        self.assertEqual(self.run_main("--name", "app", "--lock", self.no_lock), 0)
        meta = self.load()
        self.assertEqual(meta["outputs"]["app"]["bytes"], 180)
        self.assertEqual(meta["inputs"]["crate_a/foo/bar"]["bytes"], 100)

    def test_depth_bound(self):
        self.assertEqual(self.run_main("--deep", "1", "--lock", self.no_lock), 0)
        meta = self.load()
        self.assertEqual(meta["inputs"]["crate_a/[collapsed]"]["bytes"], 150)
        self.assertNotIn("crate_a/foo", meta["inputs"])
        self.assertEqual(meta["outputs"]["bloaty"]["bytes"], 180)

    def test_negative_depth_rejected_before_reading(self):
        self.csv.write_text("garbage", encoding="utf-8")
        self.assertEqual(self.run_main("--deep", "-1"), 2)
        self.assertFalse(self.out.exists())

    def test_malformed_input_writes_nothing(self):
        self.csv.write_text(CSV_TEXT + ".text,crate_c::x,12,oops\n", encoding="utf-8")
        self.assertEqual(self.run_main("--lock", self.no_lock), 2)
        self.assertFalse(self.out.exists())

    def test_unicode_digit_size_exits_2(self):
        self.csv.write_text(CSV_TEXT + ".text,crate_c::x,²,1\n", encoding="utf-8")
        self.assertEqual(self.run_main("--lock", self.no_lock), 2)
        self.assertFalse(self.out.exists())

    def test_inner_and_leaf_symbols(self):
        self.csv.write_text(CSV_TEXT + ".text,crate_a::foo,11,11\n", encoding="utf-8")
        self.assertEqual(self.run_main("--lock", self.no_lock, "--deep", "0"), 0)
        meta = self.load()
        self.assertEqual(meta["inputs"]["crate_a/foo"]["bytes"], 0)
        self.assertEqual(meta["inputs"]["crate_a/foo/[own]"]["bytes"], 11)
        self.assertEqual(meta["outputs"]["bloaty"]["bytes"], 191)

    def test_lock_file_attribution(self):
        lock = self.tmp / "Cargo.lock"
        lock.write_text(LOCK, encoding="utf-8")
        self.assertEqual(self.run_main("--lock", str(lock), "--deep", "0"), 0)
        meta = self.load()
        self.assertEqual(meta["inputs"]["app/crate_a@2.0.0/foo/bar"]["bytes"], 100)
        self.assertEqual(meta["inputs"]["app/crate_b/qux"]["bytes"], 30)
        self.assertEqual(meta["outputs"]["bloaty"]["bytes"], 180)

    def test_sections_flag(self):
        self.assertEqual(self.run_main("--sections", "--lock", self.no_lock), 0)
        self.assertIn("crate_b/.rodata/qux", self.load()["inputs"])

    def test_metric_flag(self):
        self.csv.write_text("sections,symbols,vmsize,filesize\n.bss,crate_a::BUF,4096,0\n", encoding="utf-8")
        self.assertEqual(self.run_main("--metric", "vmsize", "--lock", self.no_lock), 0)
        self.assertEqual(self.load()["outputs"]["bloaty"]["bytes"], 4096)

    def test_workers(self):
        self.assertEqual(self.run_main("--workers", "4", "--lock", self.no_lock), 0)
        self.assertEqual(self.load()["outputs"]["bloaty"]["bytes"], 180)

    def test_config_file_and_override(self):
        cfg = self.tmp / "config.json"
        cfg.write_text(json.dumps({"deep": 1, "name": "from-config", "lock": self.no_lock}), encoding="utf-8")
        self.assertEqual(self.run_main("--config", str(cfg)), 0)
        meta = self.load()
        self.assertIn("from-config", meta["outputs"])
        self.assertIn("crate_a/[collapsed]", meta["inputs"])

        self.assertEqual(self.run_main("--config", str(cfg), "--deep", "0"), 0)
        self.assertIn("crate_a/foo/bar", self.load()["inputs"])

    def test_bad_config_file(self):
        cfg = self.tmp / "config.json"
        cfg.write_text("{not json", encoding="utf-8")
        self.assertEqual(self.run_main("--config", str(cfg)), 2)
        self.assertFalse(self.out.exists())

    def test_stdin_to_stdout(self):
        stdout = io.StringIO()
        with mock.patch("sys.stdin", io.StringIO(CSV_TEXT)), contextlib.redirect_stdout(stdout):
            code = main(["--lock", self.no_lock, "--name", "piped"])
        self.assertEqual(code, 0)
        meta = json.loads(stdout.getvalue())
        self.assertEqual(meta["outputs"]["piped"]["bytes"], 180)


class TestBuildConfig(CliTestCase):

    def test_defaults(self):
        with mock.patch("bloaty_metafile.config.default_lock", return_value=None):
            config = build_config(parse_args([]), {})
        self.assertEqual(config, Config())
        self.assertEqual(config.deep, 8)
        self.assertEqual(config.name, "bloaty")

    def test_default_lock_in_directory(self):
        self.assertIsNone(default_lock(self.tmp))
        (self.tmp / "Cargo.lock").write_text(LOCK, encoding="utf-8")
        self.assertEqual(default_lock(self.tmp), self.tmp / "Cargo.lock")

    def test_negative_depth_from_config(self):
        with self.assertRaises(DepthBoundError):
            build_config(parse_args([]), {"deep": -3})

    def test_bad_values(self):
        with self.assertRaises(ConfigError):
            build_config(parse_args(["--workers", "0"]), {})
        with self.assertRaises(ConfigError):
            build_config(parse_args([]), {"metric": "bytes"})
        with self.assertRaises(ConfigError):
            build_config(parse_args([]), {"deep": "deep"})


if __name__ == "__main__":
    unittest.main()
