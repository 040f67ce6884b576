# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for main.rs rendering and run-directory materialization.
"""

from pathlib import Path

import pytest

from evalrs.cache.store import CacheManager
from evalrs.project.manifest import build_manifest
from evalrs.project.materializer import MAIN_FILE, ProjectContext, materialize, render_source
from evalrs.snippet.exceptions import WrapError
from evalrs.snippet.parser import parse_snippet


class TestRenderSource:
    def test_statements_are_wrapped(self) -> None:
        source = render_source(parse_snippet('println!("Hello World!")'))
        assert source.wrapped is True
        assert source.line_offset == 1
        assert source.text.startswith("fn main() {\n")

    def test_user_line_lands_at_offset(self) -> None:
        text = 'extern crate num_cpus;\nlet n = num_cpus::get();\nprintln!("{}", n);'
        source = render_source(parse_snippet(text))
        rendered = source.text.split("\n")
        for number, line in enumerate(text.split("\n"), start=1):
            if "extern crate" not in line:
                assert rendered[number - 1 + source.line_offset] == line

    def test_declarations_move_to_the_opening_line(self) -> None:
        source = render_source(parse_snippet("#[macro_use] extern crate log;\ninfo!(\"x\");"))
        assert source.text.split("\n")[0] == "#[macro_use] extern crate log; fn main() {"

    def test_complete_program_keeps_its_lines(self) -> None:
        text = '#[macro_use] extern crate log; // "0.4"\nfn main() {\n    info!("x");\n}\n'
        source = render_source(parse_snippet(text))
        assert source.wrapped is False
        assert source.line_offset == 0
        assert source.text.split("\n") == [
            "#[macro_use] extern crate log;",
            "fn main() {",
            '    info!("x");',
            "}",
            "",
        ]

    def test_print_result_wraps_expression(self) -> None:
        source = render_source(parse_snippet("1 + 2"), print_result=True)
        assert 'println!("{:?}"' in source.text.split("\n")[0]

    def test_print_result_rejects_complete_program(self) -> None:
        with pytest.raises(WrapError):
            render_source(parse_snippet("fn main() {}"), print_result=True)

    def test_token_depends_on_text(self) -> None:
        first = render_source(parse_snippet("let a = 1;"))
        second = render_source(parse_snippet("let a = 2;"))
        assert first.token != second.token


class TestMaterialize:
    def test_run_directory_is_a_cargo_project(self, cache_root: Path, tmp_path: Path) -> None:
        snippet = parse_snippet("extern crate a; a::go();")
        manifest = build_manifest(snippet.declarations, base_dir=tmp_path)
        cache = CacheManager(cache_root)
        entry = cache.lookup(manifest)

        run_dir = materialize(entry, render_source(snippet))

        assert run_dir.parent == entry.runs_dir
        assert (run_dir / "Cargo.toml").read_text(encoding="utf-8") == entry.manifest_path.read_text(encoding="utf-8")
        assert "a::go();" in (run_dir / MAIN_FILE).read_text(encoding="utf-8")
        assert not (run_dir / "Cargo.lock").exists()

    def test_entry_lockfile_is_copied_in(self, cache_root: Path, tmp_path: Path) -> None:
        snippet = parse_snippet("let x = 1;")
        cache = CacheManager(cache_root)
        entry = cache.lookup(build_manifest([], base_dir=tmp_path))
        entry.lockfile_path.write_text("# lock\n", encoding="utf-8")

        run_dir = materialize(entry, render_source(snippet))
        assert (run_dir / "Cargo.lock").read_text(encoding="utf-8") == "# lock\n"

    def test_concurrent_runs_get_separate_directories(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(build_manifest([], base_dir=tmp_path))
        source = render_source(parse_snippet("let x = 1;"))

        assert materialize(entry, source) != materialize(entry, source)


class TestProjectContext:
    def test_lockfile_is_stored_and_run_dir_removed(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(build_manifest([], base_dir=tmp_path))
        source = render_source(parse_snippet("let x = 1;"))

        with ProjectContext(cache, entry, source) as run_dir:
            (run_dir / "Cargo.lock").write_text("# resolved\n", encoding="utf-8")

        assert not run_dir.exists()
        assert entry.lockfile_path.read_text(encoding="utf-8") == "# resolved\n"

    def test_cleanup_on_error(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(build_manifest([], base_dir=tmp_path))
        source = render_source(parse_snippet("let x = 1;"))

        with pytest.raises(RuntimeError):
            with ProjectContext(cache, entry, source) as run_dir:
                (run_dir / "Cargo.lock").write_text("# half done\n", encoding="utf-8")
                raise RuntimeError("boom")

        assert not run_dir.exists()
        assert not entry.lockfile_path.exists()
