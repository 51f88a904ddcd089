import os
import stat
from pathlib import Path

import pytest

from clusterprep.utils.files import (
    ManagedTextBlock,
    atomic_write_text,
    backup_file,
    restore_file,
    scoped_tempfile,
)


def _block(content="10.0.0.1 a\n10.0.0.2 b"):
    return ManagedTextBlock("# >>> test", "# <<< test", content)


def test_block_appended_after_blank_line():
    out = _block().apply("127.0.0.1 localhost")
    assert out == "127.0.0.1 localhost\n\n# >>> test\n10.0.0.1 a\n10.0.0.2 b\n# <<< test\n"


def test_block_apply_is_idempotent():
    once = _block().apply("127.0.0.1 localhost\n")
    twice = _block().apply(once)
    assert once == twice


def test_block_replaces_interior_and_keeps_outside_lines():
    text = "head\n# >>> test\nold\n# <<< test\ntail\n"
    out = _block("new").apply(text)
    assert out == "head\n# >>> test\nnew\n# <<< test\ntail\n"


def test_duplicate_blocks_are_collapsed():
    text = "# >>> test\nx\n# <<< test\nmid\n# >>> test\ny\n# <<< test\n"
    out = _block("z").apply(text)
    assert out.count("# >>> test") == 1
    assert "mid" in out
    assert "y" not in out.splitlines()


def test_backup_and_restore_round_trip(tmp_path: Path):
    target = tmp_path / "conf"
    target.write_text("original\n")
    os.chmod(target, 0o640)

    backup = backup_file(target)
    assert backup is not None
    assert backup.name.startswith("conf.backup.")

    target.write_text("broken\n")
    restore_file(backup, target)
    assert target.read_text() == "original\n"
    assert stat.S_IMODE(target.stat().st_mode) == 0o640


def test_backup_of_missing_file_is_none(tmp_path: Path):
    assert backup_file(tmp_path / "missing") is None


def test_backups_in_same_second_do_not_collide(tmp_path: Path):
    target = tmp_path / "conf"
    target.write_text("a")
    first = backup_file(target)
    second = backup_file(target)
    assert first != second
    assert first.exists() and second.exists()


def test_atomic_write_sets_mode(tmp_path: Path):
    target = tmp_path / "out.yaml"
    atomic_write_text(target, "x: 1\n", mode=0o600)
    assert target.read_text() == "x: 1\n"
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    # no temp files left behind
    assert [p.name for p in tmp_path.iterdir()] == ["out.yaml"]


def test_scoped_tempfile_removed_on_error():
    with pytest.raises(RuntimeError):
        with scoped_tempfile() as p:
            p.write_text("data")
            seen = p
            raise RuntimeError("boom")
    assert not seen.exists()
