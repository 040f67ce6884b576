# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for Cargo.toml generation and the cache key it carries.
"""

from pathlib import Path

import toml

from evalrs.project.manifest import (
    ANY_VERSION,
    PACKAGE_PREFIX,
    ProjectManifest,
    build_manifest,
    render_manifest,
)
from evalrs.snippet.parser import parse_snippet


def _manifest(text: str, base_dir: Path, edition: str = "2021") -> ProjectManifest:
    return build_manifest(parse_snippet(text).declarations, edition=edition, base_dir=base_dir)


class TestBuildManifest:
    def test_no_declarations_means_no_dependencies(self, tmp_path: Path) -> None:
        manifest = _manifest('println!("Hello World!")', tmp_path)
        assert manifest.dependencies == {}

    def test_unannotated_dependency_gets_any_version(self, tmp_path: Path) -> None:
        manifest = _manifest("extern crate num_cpus; num_cpus::get();", tmp_path)
        assert manifest.dependencies == {"num_cpus": ANY_VERSION}

    def test_version_annotation_is_used(self, tmp_path: Path) -> None:
        manifest = _manifest('extern crate num_cpus; // "1.2.0"', tmp_path)
        assert manifest.dependencies == {"num_cpus": "1.2.0"}

    def test_relative_path_is_made_absolute(self, tmp_path: Path) -> None:
        manifest = _manifest('extern crate mylib; // { path = "libs/mylib" }', tmp_path)
        spec = manifest.dependencies["mylib"]
        assert spec == {"path": (tmp_path / "libs" / "mylib").resolve().as_posix()}

    def test_absolute_path_is_kept(self, tmp_path: Path) -> None:
        target = (tmp_path / "abs").resolve().as_posix()
        manifest = _manifest(f'extern crate mylib; // {{ path = "{target}" }}', tmp_path)
        assert manifest.dependencies["mylib"] == {"path": target}

    def test_table_without_source_gets_any_version(self, tmp_path: Path) -> None:
        manifest = _manifest('extern crate serde; // { features = ["derive"] }', tmp_path)
        assert manifest.dependencies["serde"] == {"version": ANY_VERSION, "features": ["derive"]}


class TestCacheKey:
    def test_declaration_order_does_not_matter(self, tmp_path: Path) -> None:
        first = _manifest("extern crate a;\nextern crate b;\n", tmp_path)
        second = _manifest("extern crate b;\nextern crate a;\n", tmp_path)
        assert first.cache_key == second.cache_key

    def test_version_changes_the_key(self, tmp_path: Path) -> None:
        loose = _manifest("extern crate num_cpus;", tmp_path)
        pinned = _manifest('extern crate num_cpus; // "1.2.0"', tmp_path)
        assert loose.cache_key != pinned.cache_key

    def test_edition_changes_the_key(self, tmp_path: Path) -> None:
        text = "extern crate a;"
        assert _manifest(text, tmp_path, "2018").cache_key != _manifest(text, tmp_path, "2021").cache_key

    def test_body_does_not_change_the_key(self, tmp_path: Path) -> None:
        first = _manifest("extern crate a; a::x();", tmp_path)
        second = _manifest("extern crate a;\nlet y = 2;\na::z(y);", tmp_path)
        assert first.cache_key == second.cache_key

    def test_project_name_follows_key(self, tmp_path: Path) -> None:
        manifest = _manifest("extern crate a;", tmp_path)
        assert manifest.project_name == PACKAGE_PREFIX + manifest.cache_key[:12]


class TestRenderManifest:
    def test_renders_valid_cargo_toml(self, tmp_path: Path) -> None:
        manifest = _manifest(
            'extern crate num_cpus; // "1.2.0"\n'
            'extern crate mylib; // { path = "mylib", default-features = false }\n'
            "extern crate rand;\n",
            tmp_path,
        )
        document = toml.loads(render_manifest(manifest))

        assert document["package"]["name"] == manifest.project_name
        assert document["package"]["edition"] == "2021"
        assert document["package"]["publish"] is False
        assert document["dependencies"]["num_cpus"] == "1.2.0"
        assert document["dependencies"]["rand"] == "*"
        assert document["dependencies"]["mylib"]["default-features"] is False
        assert document["dependencies"]["mylib"]["path"] == (tmp_path / "mylib").resolve().as_posix()

    def test_empty_dependency_table(self, tmp_path: Path) -> None:
        document = toml.loads(render_manifest(_manifest("let x = 1;", tmp_path)))
        assert document["dependencies"] == {}

    def test_rendering_is_deterministic(self, tmp_path: Path) -> None:
        first = render_manifest(_manifest("extern crate b;\nextern crate a;\n", tmp_path))
        second = render_manifest(_manifest("extern crate a;\nextern crate b;\n", tmp_path))
        assert first == second
