from __future__ import annotations

import gzip
import os
import subprocess
import sys
import tempfile
import time
import unittest
from pathlib import Path
from typing import Dict, Tuple


def _random_bytes(size: int) -> bytes:
    return os.urandom(size)


def _build_fixture_tree(root: Path, *, include_symlink: bool = True) -> Dict[str, Tuple[str, bytes]]:
    files: Dict[str, Tuple[str, bytes]] = {}
    (root / "docs").mkdir()
    (root / "docs" / "notes").mkdir()
    content = b"hello world\n" * 20
    (root / "docs" / "readme.txt").write_bytes(content)
    os.chmod(root / "docs" / "readme.txt", 0o644)
    files["docs/readme.txt"] = ("file", content)

    bin_data = _random_bytes(2048)
    (root / "docs" / "notes" / "binary.bin").write_bytes(bin_data)
    os.chmod(root / "docs" / "notes" / "binary.bin", 0o600)
    files["docs/notes/binary.bin"] = ("file", bin_data)

    (root / "docs" / "notes" / "empty.txt").write_text("")
    files["docs/notes/empty.txt"] = ("file", b"")

    # Directory metadata reference
    os.chmod(root / "docs" / "notes", 0o750)
    when = int(time.time()) - 86400
    os.utime(root / "docs" / "notes", (when - 60, when))

    if include_symlink and hasattr(os, "symlink"):
        target = "notes"
        link_path = root / "docs" / "ln_notes"
        try:
            os.symlink(target, link_path)
            files["docs/ln_notes"] = ("symlink", target.encode("utf-8"))
        except (OSError, NotImplementedError):
            pass

    return files


def _compare_trees(src: Path, dst: Path):
    for root_src, dirs_src, files_src in os.walk(src):
        rel = os.path.relpath(root_src, src)
        root_dst = os.path.join(dst, rel) if rel != "." else dst
        assert os.path.isdir(root_dst), f"Missing directory: {root_dst}"
        assert (os.stat(root_src).st_mode & 0o777) == (os.stat(root_dst).st_mode & 0o777), f"Mode differs: {root_dst}"

        dirs_src.sort()
        files_src.sort()
        dirs_dst = sorted(
            d for d in os.listdir(root_dst) if os.path.isdir(os.path.join(root_dst, d)) and not os.path.islink(os.path.join(root_dst, d))
        )
        files_dst = sorted(
            f for f in os.listdir(root_dst) if os.path.isfile(os.path.join(root_dst, f)) or os.path.islink(os.path.join(root_dst, f))
        )

        # Symlinks to directories show up in files_dst
        expected_dirs = sorted([d for d in dirs_src if not os.path.islink(os.path.join(root_src, d))])
        assert dirs_dst == expected_dirs, f"Directory mismatch under {root_src}: {dirs_dst} != {expected_dirs}"
        expected_files = sorted(files_src + [d for d in dirs_src if os.path.islink(os.path.join(root_src, d))])
        assert files_dst == expected_files, f"File mismatch under {root_src}: {files_dst} != {expected_files}"

        for fname in files_src:
            src_path = Path(root_src) / fname
            dst_path = Path(root_dst) / fname
            if os.path.islink(src_path):
                if not os.path.islink(dst_path):
                    raise AssertionError(f"Expected symlink at {dst_path}")
                assert os.readlink(dst_path) == os.readlink(src_path)
            else:
                with open(src_path, "rb") as sf, open(dst_path, "rb") as df:
                    sdata = sf.read()
                    ddata = df.read()
                    assert sdata == ddata, f"File contents differ: {dst_path}"
                assert (os.lstat(src_path).st_mode & 0o777) == (os.lstat(dst_path).st_mode & 0o777), f"Mode differs: {dst_path}"


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None, stdin: str | None = None):
        cmd = [sys.executable, "-m", "tarpack.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            input=stdin if stdin is not None else "",
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_plain_roundtrip(self):
        tmp_src = tempfile.TemporaryDirectory()
        tmp_workspace = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_src.cleanup)
        self.addCleanup(tmp_workspace.cleanup)

        src_root = Path(tmp_src.name) / "project"
        src_root.mkdir()
        _build_fixture_tree(src_root)
        workspace = Path(tmp_workspace.name)

        pack_proc = self.run_cli(["pack", str(src_root), "--outdir", str(workspace)])
        archive = workspace / "archive.tar"
        self.assertTrue(archive.exists())
        self.assertIn("Successfully created", pack_proc.stdout)
        self.assertEqual(archive.stat().st_size % 512, 0)

        extract_dir = workspace / "extract"
        unpack_proc = self.run_cli(["unpack", str(archive), "--outdir", str(extract_dir)])
        self.assertIn("Successfully unpacked", unpack_proc.stdout)
        self.assertIn("extracting: project/docs/readme.txt", unpack_proc.stdout)
        _compare_trees(src_root, extract_dir / "project")

    def test_gzip_roundtrip_with_custom_name(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "data"
            src.mkdir()
            _build_fixture_tree(src)
            self.run_cli(["pack", str(src), "bundle", "-c", "--outdir", str(root), "--sort"])
            archive = root / "bundle.tar.gz"
            self.assertTrue(archive.exists())
            with gzip.open(archive, "rb") as fh:
                raw = fh.read()
            self.assertEqual(raw[-1024:], b"\x00" * 1024)
            self.assertEqual(raw[257:263], b"ustar\x00")

            out = root / "out"
            proc = self.run_cli(["unpack", str(archive), "--outdir", str(out), "--quiet"])
            self.assertNotIn("extracting:", proc.stdout)
            self.assertIn("Successfully unpacked", proc.stdout)
            _compare_trees(src, out / "data")

    def test_name_after_compress_flag(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "data"
            src.mkdir()
            (src / "a.txt").write_text("hi")
            proc = self.run_cli(["pack", str(src), "-c", "bundle", "--outdir", str(root)])
            self.assertTrue((root / "bundle.tar.gz").exists())
            self.assertFalse((root / "archive.tar.gz").exists())
            self.assertIn("bundle.tar.gz", proc.stdout)

            # Name without compression, then a stray extra positional
            self.run_cli(["pack", str(src), "plainname", "--outdir", str(root)])
            self.assertTrue((root / "plainname.tar").exists())
            bad = self.run_cli(["pack", str(src), "one", "-c", "two", "--outdir", str(root)], expect=2)
            self.assertIn("unrecognized arguments: two", bad.stderr)

    def test_level_and_unpack_summary(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "sized"
            src.mkdir()
            (src / "a.bin").write_bytes(b"a" * 1000)
            (src / "b.bin").write_bytes(b"b" * 24)
            self.run_cli(["pack", str(src), "-c", "lvl", "--level", "9", "--outdir", str(root)])
            self.run_cli(["pack", str(src), "-c", "lvl", "--level", "12", "--outdir", str(root)], expect=2)
            proc = self.run_cli(["unpack", str(root / "lvl.tar.gz"), "--outdir", str(root / "out"), "--quiet"])
            self.assertIn("entries=3 (1024 bytes)", proc.stdout)

    def test_list_output(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "lst"
            src.mkdir()
            (src / "a.txt").write_text("hi")
            os.chmod(src / "a.txt", 0o640)
            has_symlink = hasattr(os, "symlink")
            if has_symlink:
                os.symlink("a.txt", src / "link")
            self.run_cli(["pack", str(src), "--outdir", str(root), "--sort"])
            proc = self.run_cli(["list", str(root / "archive.tar")])
            lines = proc.stdout.splitlines()
            self.assertTrue(lines[0].startswith("drwx"))
            self.assertTrue(lines[0].endswith("\tlst/"))
            self.assertEqual(lines[1], "-rw-r-----\t2\tlst/a.txt")
            if has_symlink:
                self.assertTrue(lines[2].startswith("l"))
                self.assertTrue(lines[2].endswith("\tlst/link -> a.txt"))

    def test_unsupported_suffix_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            bogus = root / "archive.zip"
            bogus.write_bytes(b"\x00" * 1024)
            proc = self.run_cli(["unpack", str(bogus), "--outdir", str(root / "out")], expect=2)
            self.assertIn("Unsupported file type", proc.stderr)
            self.assertFalse((root / "out").exists())

    def test_missing_pack_source(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            proc = self.run_cli(["pack", str(root / "nope"), "--outdir", str(root)], expect=2)
            self.assertIn("Error:", proc.stderr)
            self.assertFalse((root / "archive.tar").exists())

    def test_existing_directory_policies(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "proj"
            src.mkdir()
            (src / "new.txt").write_text("new")
            self.run_cli(["pack", str(src), "--outdir", str(root)])
            archive = root / "archive.tar"

            def existing(name: str) -> Path:
                out = root / name
                (out / "proj").mkdir(parents=True)
                (out / "proj" / "old.txt").write_text("old")
                return out

            out_skip = existing("ex_skip")
            skip_proc = self.run_cli(["unpack", str(archive), "--outdir", str(out_skip), "--exists", "skip"])
            self.assertIn("skipping: proj/", skip_proc.stdout)
            self.assertTrue((out_skip / "proj" / "old.txt").exists())
            self.assertEqual((out_skip / "proj" / "new.txt").read_text(), "new")

            out_overwrite = existing("ex_overwrite")
            self.run_cli(["unpack", str(archive), "--outdir", str(out_overwrite), "--exists", "overwrite"])
            self.assertFalse((out_overwrite / "proj" / "old.txt").exists())
            self.assertEqual((out_overwrite / "proj" / "new.txt").read_text(), "new")

            out_fail = existing("ex_fail")
            fail_proc = self.run_cli(["unpack", str(archive), "--outdir", str(out_fail), "--exists", "fail"], expect=2)
            self.assertIn("Error:", fail_proc.stderr)
            self.assertFalse((out_fail / "proj" / "new.txt").exists())

            out_ask = existing("ex_ask")
            ask_proc = self.run_cli(["unpack", str(archive), "--outdir", str(out_ask)], stdin="y\n")
            self.assertIn("Do you want to overwrite it?", ask_proc.stdout)
            self.assertFalse((out_ask / "proj" / "old.txt").exists())

            out_ask_no = existing("ex_ask_no")
            self.run_cli(["unpack", str(archive), "--outdir", str(out_ask_no)], stdin="n\n")
            self.assertTrue((out_ask_no / "proj" / "old.txt").exists())
            self.assertTrue((out_ask_no / "proj" / "new.txt").exists())

    def test_truncated_archive_reports_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "big"
            src.mkdir()
            (src / "blob.bin").write_bytes(_random_bytes(4096))
            self.run_cli(["pack", str(src), "--outdir", str(root)])
            archive = root / "archive.tar"
            data = archive.read_bytes()
            cut = root / "cut.tar"
            # directory header, file header, then half of the content
            cut.write_bytes(data[: 512 * 2 + 2048])
            proc = self.run_cli(["unpack", str(cut), "--outdir", str(root / "out")], expect=2)
            self.assertIn("Error:", proc.stderr)

    def test_missing_end_marker_warns(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "small"
            src.mkdir()
            (src / "a.txt").write_text("hi")
            self.run_cli(["pack", str(src), "--outdir", str(root)])
            data = (root / "archive.tar").read_bytes()
            stripped = root / "stripped.tar"
            stripped.write_bytes(data[:-1024])
            proc = self.run_cli(["unpack", str(stripped), "--outdir", str(root / "out")])
            self.assertIn("end-of-archive marker", proc.stderr)
            self.assertEqual((root / "out" / "small" / "a.txt").read_text(), "hi")


if __name__ == "__main__":
    unittest.main()
