"""
Unit tests for platform selection and the per-platform flag tables.
"""

import pytest

from bldmgr import platforms
from bldmgr.platforms import resolve_platform
from tools import config as toolchain_config


@pytest.fixture(autouse=True)
def no_platform_env(monkeypatch):
    monkeypatch.delenv("BLDMGR_PLATFORM", raising=False)


class TestHostPlatform:

    def test_default_is_host(self):
        platform = resolve_platform(toolchain_config)
        assert platform.name == "HOST"
        assert platform.cc == "gcc"
        assert platform.ld == "ld"
        assert platform.objdump == "objdump"
        assert platform.size == "size"
        assert platform.defines == ["-DHOST"]

    def test_host_has_no_machine_flags(self):
        platform = resolve_platform(toolchain_config, {"PLATFORM": "HOST"})
        assert platform.machine_flags() == []
        assert not platform.needs_linker_script

    def test_cpu_and_arch_come_from_build_machine(self, monkeypatch):
        monkeypatch.setattr(platforms._host, "machine", lambda: "x86_64")
        platform = resolve_platform(toolchain_config)
        assert platform.cpu == "x86_64"
        assert platform.arch == "x86_64"

    def test_unknown_platform_falls_back_to_host(self, capsys):
        platform = resolve_platform(toolchain_config, {"PLATFORM": "AVR"})
        assert platform.name == "HOST"
        assert "Unknown platform 'AVR'" in capsys.readouterr().out


class TestMsp432Platform:

    def test_toolchain_is_arm_none_eabi(self):
        platform = resolve_platform(toolchain_config, {"PLATFORM": "MSP432"})
        assert platform.name == "MSP432"
        assert platform.cc == "arm-none-eabi-gcc"
        assert platform.ld == "arm-none-eabi-ld"
        assert platform.objdump == "arm-none-eabi-objdump"
        assert platform.size == "arm-none-eabi-size"
        assert platform.defines == ["-DMSP432"]
        assert platform.needs_linker_script

    def test_machine_flags(self):
        platform = resolve_platform(toolchain_config, {"PLATFORM": "MSP432"})
        assert platform.machine_flags() == [
            "-mcpu=cortex-m4",
            "-mthumb",
            "-march=armv7e-m",
            "-mfloat-abi=hard",
            "-mfpu=fpv4-sp-d16",
            "--specs=nosys.specs",
        ]

    def test_platform_name_is_case_insensitive(self):
        assert resolve_platform(toolchain_config, {"PLATFORM": "msp432"}).name == "MSP432"

    def test_cpu_arch_specs_overrides(self):
        platform = resolve_platform(toolchain_config, {
            "PLATFORM": "MSP432", "CPU": "cortex-m3", "ARCH": "arm", "SPECS": "nano.specs",
        })
        flags = platform.machine_flags()
        assert "-mcpu=cortex-m3" in flags
        assert "-marm" in flags
        assert "--specs=nano.specs" in flags
        assert "-mthumb" not in flags

    def test_tools_needed_for_a_build(self):
        platform = resolve_platform(toolchain_config, {"PLATFORM": "MSP432"})
        assert platform.tools() == ["arm-none-eabi-gcc", "arm-none-eabi-objdump", "arm-none-eabi-size"]


class TestPlatformEnvironment:

    def test_environment_selects_platform(self, monkeypatch):
        monkeypatch.setenv("BLDMGR_PLATFORM", "MSP432")
        assert resolve_platform(toolchain_config).name == "MSP432"

    def test_command_line_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("BLDMGR_PLATFORM", "MSP432")
        assert resolve_platform(toolchain_config, {"PLATFORM": "HOST"}).name == "HOST"
