import os
import time

from conftest import staged_file
from media_compressor.core.models import FileState
from media_compressor.services import janitor


def _age(path, seconds):
    past = time.time() - seconds
    os.utime(path, (past, past))


def test_discard_is_idempotent(tmp_path):
    target = tmp_path / "gone.bin"
    target.write_bytes(b"x")

    assert janitor.discard(target, None)
    assert janitor.discard(target)
    assert not target.exists()


def test_discard_logs_instead_of_raising(monkeypatch, tmp_path, caplog):
    target = tmp_path / "stuck.bin"
    target.write_bytes(b"x")

    def _refuse(self, missing_ok=False):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(janitor.Path, "unlink", _refuse)

    assert janitor.discard(target) is False
    assert "Cleanup failed" in caplog.text


def test_release_deletes_input_and_outputs(tmp_path):
    source = tmp_path / "in.png"
    source.write_bytes(b"data")
    output = tmp_path / "out.jpg"
    output.write_bytes(b"data")
    staged = staged_file(source)

    assert janitor.release(staged, output)
    assert janitor.release(staged, output)

    assert staged.state is FileState.DELETED
    assert not source.exists()
    assert not output.exists()


def test_sweep_removes_only_stale_files(upload_dir):
    stale = upload_dir / "image-1-stale.png"
    fresh = upload_dir / "image-2-fresh.png"
    nested = upload_dir / "keep"
    stale.write_bytes(b"old")
    fresh.write_bytes(b"new")
    nested.mkdir()
    _age(stale, 7200)
    _age(nested, 7200)

    removed = janitor.sweep_staging_folder(upload_dir, retention_seconds=3600)

    assert removed == [stale]
    assert fresh.exists()
    assert nested.exists()


def test_sweep_of_missing_folder_is_a_no_op(tmp_path):
    assert janitor.sweep_staging_folder(tmp_path / "absent", retention_seconds=1) == []


def test_sweeper_run_once_records_last_run(upload_dir):
    stale = upload_dir / "pdf-1-stale.pdf"
    stale.write_bytes(b"old")
    sweeper = janitor.Sweeper(upload_dir, retention_seconds=60, interval_seconds=3600)

    removed = sweeper.run_once(now=time.time() + 120)

    assert removed == [stale]
    assert sweeper.last_removed == 1
    assert sweeper.last_run_at is not None


def test_sweeper_start_and_stop(upload_dir):
    stale = upload_dir / "image-1-stale.jpg"
    stale.write_bytes(b"old")
    _age(stale, 600)
    sweeper = janitor.Sweeper(upload_dir, retention_seconds=60, interval_seconds=3600)

    sweeper.start()
    try:
        deadline = time.time() + 5
        while stale.exists() and time.time() < deadline:
            time.sleep(0.01)
        assert sweeper.running
    finally:
        sweeper.stop(timeout=5)

    assert not stale.exists()
    assert not sweeper.running
