"""Tests for schema and module directory discovery."""

from pathlib import Path

from ldap_test_server.infrastructure.schema import (
    POSSIBLE_SCHEMA_DIRS,
    find_module_dir,
    find_schema_dir,
)


class TestFindSchemaDir:
    def test_first_existing_candidate_wins(self, tmp_path: Path) -> None:
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        assert find_schema_dir([tmp_path / "missing", first, second]) == first

    def test_skips_plain_files(self, tmp_path: Path) -> None:
        not_a_dir = tmp_path / "schema"
        not_a_dir.write_text("")
        real = tmp_path / "real"
        real.mkdir()
        assert find_schema_dir([not_a_dir, real]) == real

    def test_none_when_nothing_exists(self, tmp_path: Path) -> None:
        assert find_schema_dir([tmp_path / "a", str(tmp_path / "b")]) is None

    def test_default_candidates_are_fixed(self) -> None:
        assert POSSIBLE_SCHEMA_DIRS == (
            "/etc/ldap/schema",
            "/usr/local/etc/openldap/schema",
            "/etc/openldap/schema",
        )


class TestFindModuleDir:
    def test_requires_back_mdb(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        modules = tmp_path / "modules"
        modules.mkdir()
        (modules / "back_mdb.so").write_text("")
        assert find_module_dir([empty, modules]) == modules

    def test_none_without_module(self, tmp_path: Path) -> None:
        (tmp_path / "back_ldap.la").write_text("")
        assert find_module_dir([tmp_path, tmp_path / "missing"]) is None
