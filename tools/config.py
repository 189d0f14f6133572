"""
This file contains the configuration for the development toolchains and the
generic compiler flags shared by every platform. These settings describe the
build machine and the supported targets, not a particular project.
"""

# ==============================================================================
# Generic Compiler Flags
# ==============================================================================
# Applied to every compile on every platform. -Werror keeps host and target
# builds equally strict; -O0 and -g keep the output debuggable.
GCFLAGS = ["-Wall", "-Werror", "-g", "-O0", "-std=c99"]

# Platform used when neither the command line nor BLDMGR_PLATFORM selects one.
DEFAULT_PLATFORM = "HOST"

# ==============================================================================
# Platform Toolchains
# ==============================================================================
# Each entry names the toolchain prefix ('gcc', 'ld', 'objdump' and 'size' are
# appended to it) and the machine options passed to the compiler.
# A value of None for 'cpu' or 'arch' means "ask the build machine".
PLATFORMS = {
    "HOST": {
        "toolchain_prefix": "",
        "cpu": None,
        "arch": None,
        "defines": ["-DHOST"],
        "linker_script": False,
    },
    "MSP432": {
        "toolchain_prefix": "arm-none-eabi-",
        "cpu": "cortex-m4",
        "arch": "thumb",
        "arch_cat": "armv7e-m",
        "fpu": "fpv4-sp-d16",
        "float_abi": "hard",
        "specs": "nosys.specs",
        "defines": ["-DMSP432"],
        "linker_script": True,
    },
}

# Shown when a platform's compiler cannot be found on PATH.
TOOLCHAIN_HINTS = {
    "HOST": "Install GCC and GNU binutils for the build machine.",
    "MSP432": "Install the GNU Arm Embedded toolchain (arm-none-eabi-gcc) and add its 'bin' directory to PATH.",
}
