"""
Shared fixtures: a throwaway project on disk and a fake GCC toolchain that
records every command and writes the files named by '-o'.
"""

import os
import subprocess
import sys
import types
from pathlib import Path

import pytest

# Add the repository root to path
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from bldmgr import build_logic
from tools import config as toolchain_config


class FakeToolchain:
    """Stands in for subprocess.run and shutil.which."""

    def __init__(self):
        self.commands = []
        self.fail_on = None
        self.missing = set()

    def which(self, name):
        if name in self.missing:
            return None
        return f"/usr/bin/{name}"

    def run(self, cmd, check=False, stdout=None, **kwargs):
        cmd = list(cmd)
        self.commands.append(cmd)
        if self.fail_on and self.fail_on in cmd:
            raise subprocess.CalledProcessError(1, cmd)

        if "-o" in cmd:
            out = cmd[cmd.index("-o") + 1]
            os.makedirs(os.path.dirname(out), exist_ok=True)
            with open(out, "w") as f:
                if "-M" in cmd:
                    src = cmd[cmd.index("-o") - 1]
                    f.write(f"{Path(src).stem}.o: {src} {' '.join(self._headers(cmd))}\n")
                else:
                    f.write(" ".join(cmd))
        if stdout is not None:
            stdout.write("Disassembly of section .text:\n")
        return subprocess.CompletedProcess(cmd, 0)

    @staticmethod
    def _headers(cmd):
        headers = []
        for flag in cmd:
            if flag.startswith("-I") and os.path.isdir(flag[2:]):
                headers.extend(sorted(str(p) for p in Path(flag[2:]).glob("*.h")))
        return headers

    def tools_used(self):
        return [cmd[0] for cmd in self.commands]

    def outputs(self):
        return [cmd[cmd.index("-o") + 1] for cmd in self.commands if "-o" in cmd]


@pytest.fixture
def toolchain(monkeypatch):
    fake = FakeToolchain()
    monkeypatch.setattr(build_logic.subprocess, "run", fake.run)
    monkeypatch.setattr(build_logic.shutil, "which", fake.which)
    return fake


def _write(path, text=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Creates prj_demo with two sources and a header, and makes tmp_path the cwd."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BLDMGR_PLATFORM", raising=False)
    prj = tmp_path / "prj_demo"
    _write(prj / "src" / "main.c", '#include "memory.h"\nint main(void) { return 0; }\n')
    _write(prj / "src" / "memory.c", '#include "memory.h"\n')
    _write(prj / "include" / "memory.h", "void clear_all(char * ptr, unsigned int size);\n")
    _write(tmp_path / "lib" / "msp432" / "startup_msp432p401r_gcc.c", "\n")
    _write(prj / "demo.lds", "\n")
    return tmp_path


def make_config(**changes):
    """Returns a project config module equivalent to a prj_*/config.py."""
    config = types.SimpleNamespace(
        TARGET_NAME="demo",
        BUILD_DIR="build",
        LINKER_SCRIPT="prj_demo/demo.lds",
        COMPONENTS={
            "msp432_support": {
                "c_sources": ["msp432/startup_msp432p401r_gcc.c"],
                "include_paths": ["-Iinclude/msp432"],
                "platforms": ["MSP432"],
                "module": "lib",
                "enabled": True,
            },
            "application": {
                "c_sources": ["src/main.c", "src/memory.c"],
                "include_paths": ["-Iinclude"],
                "enabled": True,
            },
            "unused": {
                "c_sources": ["src/unused.c"],
                "include_paths": [],
                "enabled": False,
            },
        },
        GCFLAGS=toolchain_config.GCFLAGS,
        DEFAULT_PLATFORM=toolchain_config.DEFAULT_PLATFORM,
        PLATFORMS=toolchain_config.PLATFORMS,
        TOOLCHAIN_HINTS=toolchain_config.TOOLCHAIN_HINTS,
    )
    for key, value in changes.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def builder_factory(project_dir, toolchain):
    def factory(config=None, **kwargs):
        return build_logic.Builder(config or make_config(), "prj_demo", **kwargs)
    return factory


def age_files(directory, seconds=100):
    """Moves the mtime of every file under directory into the past."""
    for path in Path(directory).rglob("*"):
        if path.is_file():
            stat = path.stat()
            os.utime(path, (stat.st_atime - seconds, stat.st_mtime - seconds))
