import os
import platform as _host


class Platform:
    """
    The toolchain and machine options selected for one build.

    Built from an entry of the toolchain config's PLATFORMS table, with any
    command-line overrides (CPU, ARCH, SPECS) already applied.
    """

    def __init__(self, name, settings, overrides=None):
        overrides = overrides or {}
        self.name = name
        prefix = settings.get("toolchain_prefix", "")

        self.cc = prefix + "gcc"
        self.ld = prefix + "ld"
        self.objdump = prefix + "objdump"
        self.size = prefix + "size"

        self.cpu = overrides.get("CPU") or settings.get("cpu") or _host.machine()
        self.arch = overrides.get("ARCH") or settings.get("arch") or _host.machine()
        self.specs = overrides.get("SPECS") or settings.get("specs")
        self.arch_cat = settings.get("arch_cat")
        self.fpu = settings.get("fpu")
        self.float_abi = settings.get("float_abi")
        self.defines = list(settings.get("defines", []))
        self.needs_linker_script = settings.get("linker_script", False)
        self.is_cross = bool(prefix)

    def machine_flags(self):
        """Returns the CPU/ABI flags for a cross target; the host compiler needs none."""
        if not self.is_cross:
            return []
        flags = [f"-mcpu={self.cpu}", f"-m{self.arch}"]
        if self.arch_cat:
            flags.append(f"-march={self.arch_cat}")
        if self.float_abi:
            flags.append(f"-mfloat-abi={self.float_abi}")
        if self.fpu:
            flags.append(f"-mfpu={self.fpu}")
        if self.specs:
            flags.append(f"--specs={self.specs}")
        return flags

    def tools(self):
        """Lists the executables a full build invokes."""
        return [self.cc, self.objdump, self.size]

    def __repr__(self):
        return f"Platform({self.name!r}, cc={self.cc!r}, cpu={self.cpu!r}, arch={self.arch!r})"


def resolve_platform(toolchain_config, overrides=None):
    """
    Selects the platform named by the PLATFORM override.

    Args:
        toolchain_config: A module or object exposing PLATFORMS and DEFAULT_PLATFORM.
        overrides (dict, optional): Make-style variables from the command line.
            PLATFORM falls back to the BLDMGR_PLATFORM environment variable and
            then to DEFAULT_PLATFORM.

    Returns:
        Platform: The selected platform. Any name that is not a cross target in
        the table resolves to the default (host) platform.
    """
    overrides = overrides or {}
    default = toolchain_config.DEFAULT_PLATFORM
    requested = overrides.get("PLATFORM") or os.environ.get("BLDMGR_PLATFORM") or default
    name = requested.upper()

    if name not in toolchain_config.PLATFORMS:
        print(f"⚠️  Unknown platform '{requested}', falling back to {default}.")
        name = default

    return Platform(name, toolchain_config.PLATFORMS[name], overrides)
