from pathlib import Path

from raven_backup.storage import (
    DUMP_EXTENSION,
    BackupDirectory,
    build_backup_directory,
    database_name_from_dump,
    resolve_dump_path,
)


class TestResolveDumpPath:
    def test_appends_extension(self):
        assert resolve_dump_path("Sales", "/b") == Path("/b/Sales.ravendump")

    def test_is_idempotent_for_suffixed_names(self):
        assert resolve_dump_path("Sales.ravendump", "/b") == resolve_dump_path("Sales", "/b")

    def test_relative_directory_becomes_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = resolve_dump_path("Orders", "dumps")
        assert path.is_absolute()
        assert path == tmp_path / "dumps" / "Orders.ravendump"


def test_database_name_from_dump_strips_extension():
    assert database_name_from_dump(Path("/b/Tenant.One.ravendump")) == "Tenant.One"
    assert database_name_from_dump("A.ravendump") == "A"


class TestBackupDirectory:
    def test_ensure_creates_missing_directory(self, tmp_path):
        directory = BackupDirectory(path=tmp_path / "nested" / "dumps")
        created = directory.ensure()

        assert created.is_dir()
        # second call is harmless
        directory.ensure()

    def test_list_dumps_is_not_recursive(self, backup_root):
        (backup_root / "A.ravendump").write_bytes(b"")
        (backup_root / "notes.txt").write_text("ignore me")
        nested = backup_root / "old"
        nested.mkdir()
        (nested / "B.ravendump").write_bytes(b"")

        dumps = BackupDirectory(path=backup_root).list_dumps()

        assert [p.name for p in dumps] == ["A.ravendump"]

    def test_list_dumps_applies_predicate_to_paths(self, backup_root):
        for name in ("Keep", "Drop"):
            (backup_root / f"{name}{DUMP_EXTENSION}").write_bytes(b"")

        dumps = BackupDirectory(path=backup_root).list_dumps(lambda path: path.name.startswith("Keep"))

        assert [p.name for p in dumps] == ["Keep.ravendump"]

    def test_list_dumps_on_missing_directory_is_empty(self, tmp_path):
        assert BackupDirectory(path=tmp_path / "absent").list_dumps() == []

    def test_build_backup_directory_expands_user(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        directory = build_backup_directory("~/dumps")
        assert directory.path == tmp_path / "dumps"
