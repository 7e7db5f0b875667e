from __future__ import annotations

import hashlib
import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mapcheck.main import EXIT_FATAL, EXIT_OK, EXIT_PROBLEMS, BarProgress, run
from mapcheck.models import ExpectedFile
from mapcheck.observability import VerifyProgress
from mapcheck.problem import CheckError, NotFound, WrongSignature

GOOD = b"good archive" * 50
BAD = b"bad archive!" * 50


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"logging:\n  dir: {tmp_path / 'logs'}\n  to_console: false\nlog_level: INFO\n",
        encoding="utf-8",
    )
    return path


def _maps_dir(tmp_path: Path) -> Path:
    maps = tmp_path / "maps"
    maps.mkdir()
    good_md5 = hashlib.md5(GOOD).hexdigest()
    (maps / "update.xml").write_text(
        f"""<drmEntry>
  <mapCatalog>
    <region>
      <region id="1" name="A">
        <dataGroup id="1" unpackedsize="0" packedsize="{len(GOOD)}" md5="{good_md5}"/>
        <dataGroup id="2" unpackedsize="0" packedsize="{len(GOOD)}" md5="{good_md5}"/>
      </region>
      <region id="2" name="B">
        <dataGroup id="1" unpackedsize="0" packedsize="10" md5="{good_md5}"/>
      </region>
    </region>
  </mapCatalog>
  <salesRegion name="Test region">
    <region id="1"/>
    <region id="2"/>
  </salesRegion>
</drmEntry>
""",
        encoding="utf-8",
    )
    (maps / "1_01.zip").write_bytes(GOOD)
    (maps / "1_02.zip").write_bytes(BAD)
    return maps


def test_clean_run(tmp_path: Path, capsys) -> None:
    maps = _maps_dir(tmp_path)
    (maps / "2_01.zip").unlink(missing_ok=True)
    (maps / "1_02.zip").write_bytes(GOOD)
    update = maps / "update.xml"
    update.write_text(update.read_text().replace('<region id="2"/>', ""), encoding="utf-8")

    code = run([str(maps), "--no-progress", "--config", str(_config(tmp_path))])
    assert code == EXIT_OK
    assert "All files are OK" in capsys.readouterr().out


def test_force_delete_removes_corrupt_files(tmp_path: Path, capsys) -> None:
    maps = _maps_dir(tmp_path)
    code = run([str(maps), "--no-progress", "-f", "--config", str(_config(tmp_path))])
    out = capsys.readouterr().out
    assert code == EXIT_PROBLEMS
    assert "1 files not found: 2_01.zip" in out
    assert "1_02.zip has signature" in out
    assert "Deleted 1 corrupt files" in out
    assert not (maps / "1_02.zip").exists()
    assert (maps / "1_01.zip").exists()
    log_text = (tmp_path / "logs" / "mapcheck.log").read_text(encoding="utf-8")
    assert '"event":"verify_done"' in log_text


def test_declined_prompt_keeps_files(tmp_path: Path, capsys, monkeypatch) -> None:
    maps = _maps_dir(tmp_path)
    monkeypatch.setattr("builtins.input", lambda prompt="": "n")
    code = run([str(maps), "--no-progress", "--config", str(_config(tmp_path))])
    assert code == EXIT_PROBLEMS
    assert "Corrupt files were kept." in capsys.readouterr().out
    assert (maps / "1_02.zip").exists()


def test_missing_manifest_is_fatal(tmp_path: Path, capsys) -> None:
    code = run([str(tmp_path), "--no-progress", "--config", str(_config(tmp_path))])
    assert code == EXIT_FATAL
    assert "update.xml" in capsys.readouterr().err


def test_strict_rejects_unknown_country(tmp_path: Path, capsys) -> None:
    maps = _maps_dir(tmp_path)
    update = maps / "update.xml"
    update.write_text(
        update.read_text().replace('<region id="2"/>', '<region id="2"/><region id="3"/>'),
        encoding="utf-8",
    )
    code = run([str(maps), "--no-progress", "--strict", "--config", str(_config(tmp_path))])
    assert code == EXIT_FATAL
    assert "3" in capsys.readouterr().err


def test_invalid_config_is_fatal(tmp_path: Path, capsys) -> None:
    maps = _maps_dir(tmp_path)
    config = tmp_path / "broken.yaml"
    config.write_text("verify: [unclosed\n", encoding="utf-8")
    code = run([str(maps), "--no-progress", "--config", str(config)])
    assert code == EXIT_FATAL
    assert "Could not load config" in capsys.readouterr().err


def test_unusable_log_dir_is_fatal(tmp_path: Path, capsys) -> None:
    maps = _maps_dir(tmp_path)
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text(f"logging:\n  dir: {blocker / 'logs'}\n", encoding="utf-8")
    code = run([str(maps), "--no-progress", "--config", str(config)])
    assert code == EXIT_FATAL
    assert "Could not set up logging" in capsys.readouterr().err


class _FakeBar:
    def __init__(self) -> None:
        self.n = 0

    def update(self, count: int) -> None:
        self.n += count

    def set_postfix_str(self, text: str, refresh: bool = True) -> None:
        pass


def test_bar_progress_counts_each_byte_once() -> None:
    bar = _FakeBar()
    listener = BarProgress(bar, VerifyProgress())
    partial = ExpectedFile("1_01.zip", 100, "0" * 32)
    listener.file_started(partial)
    listener.bytes_read(partial, 40)
    listener.file_finished(partial, CheckError(filename="1_01.zip", cause="read error"))
    assert bar.n == 100

    hashed = ExpectedFile("1_02.zip", 50, "0" * 32)
    listener.file_started(hashed)
    listener.bytes_read(hashed, 50)
    listener.file_finished(hashed, WrongSignature(filename="1_02.zip", expected="0" * 32, got="1" * 32))
    assert bar.n == 150

    skipped = ExpectedFile("1_03.zip", 30, "0" * 32)
    listener.file_started(skipped)
    listener.file_finished(skipped, NotFound(filename="1_03.zip"))
    assert bar.n == 180
