# components.py
# Shared components that projects can pull in. Paths are relative to the
# 'lib' directory; a project copies the entries it needs and sets 'module'.
# 'platforms' limits a component to the listed platforms.

components = {
    "msp432_support": {
        "c_sources": [
            r"msp432/startup_msp432p401r_gcc.c",
            r"msp432/system_msp432p401r.c",
            r"msp432/interrupts_msp432p401r_gcc.c",
        ],
        "include_paths": [r"-Iinclude/msp432", r"-Iinclude/CMSIS"],
        "platforms": ["MSP432"],
        "enabled": True,
    },
}
