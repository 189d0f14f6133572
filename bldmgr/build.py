#!/usr/bin/env python3
import sys
import os
import importlib

# Add the repository root to the path so 'bldmgr' and 'tools' import when run as a script.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from bldmgr.build_logic import Builder

# Make-style variables accepted on the command line as NAME=value.
PLATFORM_OVERRIDES = ("PLATFORM", "CPU", "ARCH", "SPECS", "TARGET")


def find_projects(root_dir='.'):
    """Finds all project directories (prefixed with 'prj_') in the root directory."""
    return [
        item for item in os.listdir(root_dir)
        if os.path.isdir(os.path.join(root_dir, item)) and item.startswith("prj_")
    ]


def print_usage(projects):
    """Prints the available goals and platform overrides."""
    print("\nUsage: python bldmgr/build.py <project_name> [goal ...] [NAME=value ...] [-j N]")
    print("\nAvailable projects:")
    if projects:
        for proj in sorted(projects):
            print(f"  - {proj}")
    else:
        print("  No projects found (expected directories in the root folder starting with 'prj_').")

    print("\nGoals:")
    print("  build        (default) Compiles all objects and links the final executable.")
    print("  all          Same as build.")
    print("  compile-all  Compiles all object files, but doesn't link.")
    print("  rebuild      Cleans and then builds the project from scratch.")
    print("  clean        Removes all generated files for every platform.")
    print("  <file>.i     Preprocessed output of the matching C file.")
    print("  <file>.d     Header dependency list of the matching C file.")
    print("  <file>.asm   Assembly of the matching C file, or disassembly of <TARGET>.out.")
    print("  <file>.o     Object file of the matching C file.")
    print("  <TARGET>.out The linked executable (same prerequisites as build).")

    print("\nPlatform overrides:")
    print("  PLATFORM     HOST (default) or MSP432; also read from BLDMGR_PLATFORM.")
    print("  CPU          CPU passed to -mcpu (e.g. cortex-m4).")
    print("  ARCH         Instruction set passed as -m<ARCH> (e.g. thumb, arm).")
    print("  SPECS        Specs file given to the linker (e.g. nosys.specs, nano.specs).")
    print("  TARGET       Base name of the executable.")
    sys.exit(1)


def parse_arguments(args):
    """
    Splits the words after the project name into goals, overrides and a job count.

    Returns:
        tuple: (goals, overrides, jobs). Goals default to ['build'].
    """
    goals = []
    overrides = {}
    jobs = 1

    words = list(args)
    while words:
        word = words.pop(0)
        if word in ("-j", "--jobs"):
            if not words:
                raise ValueError(f"'{word}' requires a number")
            word = words.pop(0)
            jobs = _parse_jobs(word)
        elif word.startswith("-j"):
            jobs = _parse_jobs(word[2:])
        elif "=" in word:
            name, value = word.split("=", 1)
            if name not in PLATFORM_OVERRIDES:
                raise ValueError(f"Unknown override '{name}' (expected one of {', '.join(PLATFORM_OVERRIDES)})")
            overrides[name] = value
        elif word.startswith("-"):
            raise ValueError(f"Unknown option '{word}'")
        else:
            goals.append(word)

    return goals or ["build"], overrides, jobs


def _parse_jobs(value):
    try:
        jobs = int(value)
    except ValueError:
        raise ValueError(f"Invalid job count '{value}'")
    if jobs < 1:
        raise ValueError(f"Invalid job count '{value}'")
    return jobs


def main(argv=None):
    """Parses command-line arguments and runs the requested goals in order."""
    argv = sys.argv if argv is None else argv
    project_root = os.getcwd()
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
    available_projects = find_projects(project_root)

    if len(argv) < 2 or argv[1] not in available_projects:
        print("\n❌ Error: Project name not specified or not found.")
        print_usage(available_projects)
        return

    project_name = argv[1]

    try:
        goals, overrides, jobs = parse_arguments(argv[2:])
    except ValueError as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        print_usage(available_projects)
        return

    # Dynamically import the project's config file
    try:
        config_module_path = f"{project_name}.config"
        config = importlib.import_module(config_module_path)
    except ImportError as e:
        print(f"\n❌ Error: Could not import configuration for project '{project_name}'.", file=sys.stderr)
        print(f"   Reason: {e}", file=sys.stderr)
        print(f"   Ensure '{project_name}/config.py' exists and is valid.", file=sys.stderr)
        sys.exit(1)

    builder = Builder(config, project_name, overrides=overrides, jobs=jobs)
    for goal in goals:
        builder.make(goal)


if __name__ == "__main__":
    main()
