"""Tests for deployer.packager: functions source archives and fingerprints."""

import functools
import hashlib
import json
import os
import stat
import zipfile
from pathlib import Path

import pytest

from deployer.errors import DeployError
from deployer.isolation import load_isolator
from deployer.packager import (
    CONFIG_DEST_FILE,
    DEFAULT_IGNORE,
    FIXED_IGNORE,
    PackagedSource,
    effective_ignore,
    package_source,
    prepare_functions_upload,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _write(root: Path, rel: str, content: str) -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


@pytest.fixture
def src(tmp_path: Path) -> Path:
    d = tmp_path / "functions"
    d.mkdir()
    return d


@pytest.fixture
def out_zip(tmp_path: Path):
    """tmp_factory writing archives under tmp_path; yields the factory."""
    counter = iter(range(1000))

    def factory() -> str:
        return str(tmp_path / f"out-{next(counter)}.zip")

    return factory


def _members(path: str) -> list[str]:
    with zipfile.ZipFile(path) as zf:
        return zf.namelist()


# ===========================================================================
# effective_ignore
# ===========================================================================

class TestEffectiveIgnore:
    def test_defaults_when_missing(self):
        assert effective_ignore({}) == DEFAULT_IGNORE + FIXED_IGNORE

    def test_caller_patterns_then_fixed(self):
        assert effective_ignore({"ignore": ["dist"]}) == [
            "dist",
            "firebase-debug.log",
            "firebase-debug.*.log",
            ".runtimeconfig.json",
        ]

    def test_explicit_empty_list_disables_defaults(self):
        assert effective_ignore({"ignore": []}) == FIXED_IGNORE

    def test_caller_list_not_mutated(self):
        patterns = ["dist"]
        effective_ignore({"ignore": patterns})
        assert patterns == ["dist"]


# ===========================================================================
# package_source
# ===========================================================================

class TestPackageSource:
    def test_two_file_scenario(self, src, out_zip):
        """a.txt="x", b.txt="y" → both archived; hash is sha(x).sha(y)."""
        _write(src, "a.txt", "x")
        _write(src, "b.txt", "y")

        result = package_source(src, {"ignore": []}, tmp_factory=out_zip)

        assert isinstance(result, PackagedSource)
        assert _members(result.path_to_source) == ["a.txt", "b.txt"]
        assert result.hash == _sha(b"x") + "." + _sha(b"y")

    def test_archive_contents_match_source(self, src, out_zip):
        _write(src, "lib/index.js", "module.exports = 1;\n")
        result = package_source(src, {}, tmp_factory=out_zip)
        with zipfile.ZipFile(result.path_to_source) as zf:
            assert zf.read("lib/index.js") == b"module.exports = 1;\n"
            assert zf.getinfo("lib/index.js").compress_type == zipfile.ZIP_DEFLATED

    def test_empty_directory_empty_hash(self, src, out_zip):
        result = package_source(src, {}, tmp_factory=out_zip)
        assert result.hash == ""
        assert Path(result.path_to_source).exists()
        assert _members(result.path_to_source) == []

    def test_deterministic(self, src, out_zip):
        _write(src, "a.txt", "x")
        _write(src, "nested/b.txt", "y")
        cfg = {"svc": {"key": "k"}}
        r1 = package_source(src, {}, cfg, tmp_factory=out_zip)
        r2 = package_source(src, {}, cfg, tmp_factory=out_zip)
        assert r1.hash == r2.hash
        assert r1.path_to_source != r2.path_to_source

    def test_config_key_order_does_not_change_hash(self, src, out_zip):
        _write(src, "a.txt", "x")
        r1 = package_source(src, {}, {"a": 1, "b": 2}, tmp_factory=out_zip)
        r2 = package_source(src, {}, {"b": 2, "a": 1}, tmp_factory=out_zip)
        assert r1.hash == r2.hash

    def test_nested_config_key_order_does_not_change_hash(self, src, out_zip):
        r1 = package_source(src, {}, {"x": {"b": [1, 2], "a": None}}, tmp_factory=out_zip)
        r2 = package_source(src, {}, {"x": {"a": None, "b": [1, 2]}}, tmp_factory=out_zip)
        assert r1.hash == r2.hash

    def test_key_order_inside_lists_does_not_change_hash(self, src, out_zip):
        r1 = package_source(src, {}, {"a": [{"x": 1, "y": 2}]}, tmp_factory=out_zip)
        r2 = package_source(src, {}, {"a": [{"y": 2, "x": 1}]}, tmp_factory=out_zip)
        assert r1.hash == r2.hash
        assert r1.hash == (
            '[{"key":"a","value":[[{"key":"x","value":1},{"key":"y","value":2}]]}]'
        )

    def test_config_value_changes_hash(self, src, out_zip):
        r1 = package_source(src, {}, {"a": 1}, tmp_factory=out_zip)
        r2 = package_source(src, {}, {"a": 2}, tmp_factory=out_zip)
        assert r1.hash != r2.hash

    def test_config_hash_is_canonical_json(self, src, out_zip):
        _write(src, "a.txt", "x")
        result = package_source(src, {}, {"b": 2, "a": 1}, tmp_factory=out_zip)
        assert result.hash == (
            _sha(b"x") + "." + '[{"key":"a","value":1},{"key":"b","value":2}]'
        )

    def test_config_only_hash(self, src, out_zip):
        result = package_source(src, {}, {}, tmp_factory=out_zip)
        assert result.hash == "[]"

    def test_debug_logs_ignored(self, src, out_zip):
        _write(src, "index.js", "x")
        _write(src, "firebase-debug.log", "noise")
        _write(src, "firebase-debug.2024-01-01.log", "noise")
        result = package_source(src, {"ignore": []}, tmp_factory=out_zip)
        assert _members(result.path_to_source) == ["index.js"]
        assert result.hash == _sha(b"x")

    def test_debug_logs_ignored_with_caller_patterns(self, src, out_zip):
        _write(src, "index.js", "x")
        _write(src, "firebase-debug.log", "noise")
        result = package_source(src, {"ignore": ["*.md"]}, tmp_factory=out_zip)
        assert _members(result.path_to_source) == ["index.js"]

    def test_default_ignore_applies(self, src, out_zip):
        _write(src, "index.js", "x")
        _write(src, "node_modules/dep/index.js", "dep")
        _write(src, ".git/HEAD", "ref")
        result = package_source(src, {}, tmp_factory=out_zip)
        assert _members(result.path_to_source) == ["index.js"]

    def test_stale_runtimeconfig_excluded_without_config(self, src, out_zip):
        _write(src, "index.js", "x")
        _write(src, CONFIG_DEST_FILE, '{"stale": true}')
        result = package_source(src, {}, tmp_factory=out_zip)
        assert _members(result.path_to_source) == ["index.js"]
        assert result.hash == _sha(b"x")

    def test_runtimeconfig_replaced_by_supplied_config(self, src, out_zip):
        _write(src, "index.js", "x")
        _write(src, CONFIG_DEST_FILE, '{"stale": true}')
        runtime_config = {"b": {"d": 1}, "a": "v"}

        result = package_source(src, {}, runtime_config, tmp_factory=out_zip)

        members = _members(result.path_to_source)
        assert members.count(CONFIG_DEST_FILE) == 1
        with zipfile.ZipFile(result.path_to_source) as zf:
            text = zf.read(CONFIG_DEST_FILE).decode("utf-8")
        # raw (non-canonical) key order, pretty printed
        assert text == json.dumps(runtime_config, indent=2)
        assert json.loads(text) == runtime_config

    def test_runtimeconfig_mode(self, src, out_zip):
        result = package_source(src, {}, {"a": 1}, tmp_factory=out_zip)
        with zipfile.ZipFile(result.path_to_source) as zf:
            mode = zf.getinfo(CONFIG_DEST_FILE).external_attr >> 16
        assert stat.S_IMODE(mode) == 0o644

    def test_file_mode_preserved(self, src, out_zip):
        script = _write(src, "bin/run.sh", "#!/bin/sh\n")
        script.chmod(0o755)
        result = package_source(src, {}, tmp_factory=out_zip)
        with zipfile.ZipFile(result.path_to_source) as zf:
            mode = zf.getinfo("bin/run.sh").external_attr >> 16
        assert stat.S_IMODE(mode) == 0o755

    def test_runtime_config_not_mutated(self, src, out_zip):
        runtime_config = {"b": 1, "a": {"d": 2, "c": 3}}
        package_source(src, {}, runtime_config, tmp_factory=out_zip)
        assert list(runtime_config) == ["b", "a"]
        assert list(runtime_config["a"]) == ["d", "c"]

    def test_notice_printed(self, src, out_zip, capsys):
        _write(src, "a.txt", "x")
        package_source(src, {}, tmp_factory=out_zip)
        out = capsys.readouterr().out
        assert "functions:" in out
        assert f"packaged {src}" in out
        assert "for uploading" in out

    def test_default_tmp_factory(self, src):
        _write(src, "a.txt", "x")
        result = package_source(src, {})
        try:
            name = os.path.basename(result.path_to_source)
            assert name.startswith("firebase-functions-")
            assert name.endswith(".zip")
            assert _members(result.path_to_source) == ["a.txt"]
        finally:
            os.unlink(result.path_to_source)

    def test_default_tmp_paths_unique(self, src):
        r1 = package_source(src, {})
        r2 = package_source(src, {})
        try:
            assert r1.path_to_source != r2.path_to_source
        finally:
            os.unlink(r1.path_to_source)
            os.unlink(r2.path_to_source)


class TestPackageSourceErrors:
    def test_broken_symlink_is_fatal(self, src, out_zip):
        _write(src, "a.txt", "x")
        os.symlink(src / "missing", src / "dangling")
        with pytest.raises(DeployError) as excinfo:
            package_source(src, {}, tmp_factory=out_zip)
        err = excinfo.value
        assert "Could not read source directory" in err.message
        assert "Remove links and shortcuts" in err.message
        assert err.exit_code == 1
        assert isinstance(err.original, OSError)
        assert err.__cause__ is err.original

    def test_partial_archive_removed_on_failure(self, src, tmp_path):
        os.symlink(src / "missing", src / "dangling")
        target = tmp_path / "partial.zip"
        with pytest.raises(DeployError):
            package_source(src, {}, tmp_factory=lambda: str(target))
        assert not target.exists()

    def test_missing_source_dir_is_fatal(self, tmp_path, out_zip):
        with pytest.raises(DeployError):
            package_source(tmp_path / "nope", {}, tmp_factory=out_zip)

    def test_unserialisable_config_is_fatal(self, src, out_zip):
        with pytest.raises(DeployError):
            package_source(src, {}, {"a": object()}, tmp_factory=out_zip)

    def test_cyclic_config_is_fatal(self, src, out_zip):
        cfg: dict = {}
        cfg["self"] = cfg
        with pytest.raises(DeployError) as excinfo:
            package_source(src, {}, cfg, tmp_factory=out_zip)
        assert isinstance(excinfo.value.original, ValueError)


# ===========================================================================
# prepare_functions_upload
# ===========================================================================

class TestPrepareFunctionsUpload:
    def test_packages_source_without_isolation(self, src, out_zip):
        _write(src, "a.txt", "x")

        def isolator():
            raise AssertionError("isolator must not run")

        result = prepare_functions_upload(src, {}, isolator=isolator, tmp_factory=out_zip)
        assert _members(result.path_to_source) == ["a.txt"]

    def test_isolate_must_be_true(self, src, out_zip):
        """Only a literal True enables isolation."""
        _write(src, "a.txt", "x")

        def isolator():
            raise AssertionError("isolator must not run")

        result = prepare_functions_upload(
            src, {"isolate": "yes"}, isolator=isolator, tmp_factory=out_zip
        )
        assert _members(result.path_to_source) == ["a.txt"]

    def test_packages_isolated_dir_only(self, src, tmp_path, out_zip, capsys):
        _write(src, "original.txt", "o")
        isolated = tmp_path / "isolated"
        _write(isolated, "pruned.txt", "p")

        result = prepare_functions_upload(
            src, {"isolate": True}, {"a": 1},
            isolator=lambda: isolated, tmp_factory=out_zip,
        )

        assert _members(result.path_to_source) == ["pruned.txt", CONFIG_DEST_FILE]
        assert result.hash.startswith(_sha(b"p") + ".")
        out = capsys.readouterr().out
        assert "Start isolating the source folder..." in out
        assert f"Finished isolation at {isolated}" in out

    def test_async_isolator(self, src, tmp_path, out_zip):
        isolated = tmp_path / "isolated"
        _write(isolated, "a.txt", "x")

        async def isolator():
            return str(isolated)

        result = prepare_functions_upload(
            src, {"isolate": True}, isolator=isolator, tmp_factory=out_zip
        )
        assert result.hash == _sha(b"x")

    def test_isolation_failure_reraised(self, src, out_zip, capsys):
        calls = []

        def factory():
            calls.append(1)
            return out_zip()

        def isolator():
            raise RuntimeError("workspace not found")

        with pytest.raises(RuntimeError, match="workspace not found"):
            prepare_functions_upload(
                src, {"isolate": True}, isolator=isolator, tmp_factory=factory
            )
        assert calls == [], "source dir must not be packaged as a fallback"
        assert "+++ Failed to isolate: workspace not found" in capsys.readouterr().out

    def test_missing_isolator_module_is_fatal(self, src, out_zip, monkeypatch):
        monkeypatch.setattr(
            "deployer.packager.load_isolator",
            functools.partial(load_isolator, "deployer_no_such_module:isolate"),
        )
        with pytest.raises(DeployError, match="Could not load isolator module"):
            prepare_functions_upload(src, {"isolate": True}, tmp_factory=out_zip)
