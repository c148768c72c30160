import subprocess
from pathlib import Path

import pytest

import dump_program
from dump_program import BUILD_CMD, DEFAULT_DUMP_SCRIPT, DUMP_SCRIPT_ENV, build_and_dump, main, resolve_dump_script


class FakeRun:
    def __init__(self, codes=None):
        self.calls = []
        self.codes = codes or {}

    def __call__(self, argv, check=False):
        self.calls.append(list(argv))
        return subprocess.CompletedProcess(argv, self.codes.get(argv[0], 0))


@pytest.fixture
def program(tmp_path):
    script = tmp_path / "dump.sh"
    script.write_text("#!/bin/sh\n", encoding="utf-8")
    artifact = tmp_path / "program.so"
    artifact.write_bytes(b"\x7fELF")
    return script, artifact


def test_resolve_dump_script(monkeypatch):
    monkeypatch.delenv(DUMP_SCRIPT_ENV, raising=False)
    assert resolve_dump_script() == Path(DEFAULT_DUMP_SCRIPT).expanduser()
    monkeypatch.setenv(DUMP_SCRIPT_ENV, "/opt/sdk/dump.sh")
    assert resolve_dump_script() == Path("/opt/sdk/dump.sh")
    assert resolve_dump_script("./dump.sh") == Path("./dump.sh")


def test_build_and_dump_runs_both_steps(monkeypatch, program, tmp_path):
    script, artifact = program
    fake = FakeRun()
    monkeypatch.setattr(dump_program.subprocess, "run", fake)
    out = build_and_dump(script, artifact, tmp_path / "dump.txt")
    assert out == tmp_path / "dump.txt"
    assert fake.calls == [BUILD_CMD, [str(script), str(artifact), str(tmp_path / "dump.txt")]]


def test_skip_build(monkeypatch, program, tmp_path):
    script, artifact = program
    fake = FakeRun()
    monkeypatch.setattr(dump_program.subprocess, "run", fake)
    build_and_dump(script, artifact, tmp_path / "dump.txt", skip_build=True)
    assert fake.calls == [[str(script), str(artifact), str(tmp_path / "dump.txt")]]


def test_build_failure_stops_before_dump(monkeypatch, program, tmp_path):
    script, artifact = program
    fake = FakeRun(codes={"cargo": 101})
    monkeypatch.setattr(dump_program.subprocess, "run", fake)
    with pytest.raises(RuntimeError, match="exit code 101"):
        build_and_dump(script, artifact, tmp_path / "dump.txt")
    assert fake.calls == [BUILD_CMD]


def test_missing_dump_script(monkeypatch, program, tmp_path):
    _, artifact = program
    monkeypatch.setattr(dump_program.subprocess, "run", FakeRun())
    with pytest.raises(RuntimeError, match="dump script not found"):
        build_and_dump(tmp_path / "missing.sh", artifact, tmp_path / "dump.txt", skip_build=True)


def test_main_dies_on_missing_artifact(monkeypatch, program, tmp_path):
    script, _ = program
    monkeypatch.setattr(dump_program.subprocess, "run", FakeRun())
    with pytest.raises(SystemExit) as exc:
        main(["--dump-script", str(script), "--artifact", str(tmp_path / "missing.so"), "--skip-build"])
    assert exc.value.code == 1
