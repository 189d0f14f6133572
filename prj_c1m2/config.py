import os
import sys

# Add the repository root to the system path so the shared 'tools' and 'lib'
# configuration can be imported when this module is loaded by the build manager.
_CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
_ROOT = os.path.abspath(os.path.join(_CURRENT_DIR, '..'))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from tools import config
from lib.components import components as lib


# ==============================================================================
# Project & Target Configuration
# ==============================================================================
# Base name of the final executable (c1m2.out, c1m2.map, c1m2.asm).
TARGET_NAME = "c1m2"

# Directory where build artifacts will be stored.
BUILD_DIR = "build"

# --- Linker Script ---
# Memory layout of the MSP432P401R; only used when PLATFORM=MSP432.
LINKER_SCRIPT = r"prj_c1m2/msp432p401r.lds"

# ==============================================================================
# Project Components
# ==============================================================================
# Minimal MSP432P401R startup, system and interrupt files live under lib/msp432,
# with their headers in lib/include; replace them with the TI versions as needed.
lib_components = {}
for component_name in ['msp432_support']:
    lib_components[component_name] = lib[component_name].copy()
    lib_components[component_name]['module'] = 'lib'

COMPONENTS = {
    **lib_components,
    "application": {
        "c_sources": [r"src/main.c", r"src/memory.c"],
        "include_paths": [r"-Iinclude/common"],
        "enabled": True
    },
}

# ==============================================================================
# Expose Tool Config to Build Logic
# ==============================================================================
GCFLAGS = config.GCFLAGS
DEFAULT_PLATFORM = config.DEFAULT_PLATFORM
PLATFORMS = config.PLATFORMS
TOOLCHAIN_HINTS = config.TOOLCHAIN_HINTS
