from __future__ import annotations

import importlib.util
from pathlib import Path

from inkwell.auth.models import CodePurpose, VerificationCode
from inkwell.auth.repository import VerificationCodeRepository
from inkwell.core import config as config_module

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "cleanup_expired_codes_once.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("cleanup_expired_codes_once", SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _code(code_id: str, email: str, expires_at: int) -> VerificationCode:
    return VerificationCode(
        code_id=code_id,
        email=email,
        purpose=CodePurpose.REGISTRATION,
        name="Ann",
        password_hash="hash",
        otp_code="123456",
        otp_expires_at=expires_at,
        created_at=100,
    )


def test_cleanup_script_removes_only_expired_codes(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("MONGODB_URI", raising=False)
    db_path = tmp_path / "inkwell.db"
    repo = VerificationCodeRepository(database_path=db_path)
    repo.create(_code("c1", "old@example.com", 200))
    repo.create(_code("c2", "new@example.com", 4_000_000_000))

    exit_code = _load_script().main(["--sqlite-path", str(db_path)])

    assert exit_code == 0
    assert "Removed expired codes: 1" in capsys.readouterr().out
    assert repo.get_by_email("old@example.com") is None
    assert repo.get_by_email("new@example.com") is not None
    repo.close()


def test_cleanup_script_default_path_ignores_working_directory(
    tmp_path: Path, monkeypatch, capsys
) -> None:
    project_root = tmp_path / "project"
    elsewhere = tmp_path / "cron"
    elsewhere.mkdir()
    monkeypatch.setattr(config_module, "PROJECT_ROOT", project_root)
    monkeypatch.delenv("AUTH_SQLITE_PATH", raising=False)
    monkeypatch.delenv("MONGODB_URI", raising=False)
    (project_root / "runtime").mkdir(parents=True)
    repo = VerificationCodeRepository(database_path=project_root / "runtime" / "inkwell.db")
    repo.create(_code("c1", "old@example.com", 1))
    monkeypatch.chdir(elsewhere)

    exit_code = _load_script().main([])

    assert exit_code == 0
    assert "Removed expired codes: 1" in capsys.readouterr().out
    assert repo.get_by_email("old@example.com") is None
    assert not (elsewhere / "runtime").exists()
    repo.close()
