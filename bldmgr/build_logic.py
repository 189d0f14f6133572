import os
import subprocess
import shutil
import sys
import re
import concurrent.futures

from bldmgr.platforms import resolve_platform

# Every file type the rules can produce; 'clean' removes exactly these.
OUTPUT_EXTENSIONS = (".i", ".d", ".asm", ".o", ".map", ".out")

# make's exit status when a goal has no rule.
NO_RULE_EXIT_CODE = 2


class Builder:
    """
    Encapsulates all logic for compiling, linking and cleaning one project
    for one platform. Receives configuration dynamically and supports
    incremental builds driven by GCC-generated dependency files.
    """

    def __init__(self, config_module, project_name, overrides=None, jobs=1):
        """
        Resolves the platform, collects sources and constructs the flag sets.

        Args:
            config_module: The project's config module (prj_*/config.py).
            project_name (str): Name of the project directory.
            overrides (dict, optional): Make-style variables such as PLATFORM,
                CPU, ARCH, SPECS and TARGET.
            jobs (int): Number of sources compiled concurrently.
        """
        self.config = config_module
        self.project_name = project_name
        self.overrides = dict(overrides or {})
        self.jobs = max(1, int(jobs))

        self.platform = resolve_platform(self.config, self.overrides)
        self.target_name = self.overrides.get("TARGET") or self.config.TARGET_NAME
        # Outputs for each platform are kept apart, e.g. 'build/prj_c1m2/MSP432'.
        self.project_build_dir = os.path.join(self.config.BUILD_DIR, self.project_name)
        self.build_dir = os.path.join(self.project_build_dir, self.platform.name)
        self._tools_checked = False

        print(f"🎯 Platform: {self.platform.name} ({self.platform.cc}, cpu={self.platform.cpu}, arch={self.platform.arch})")
        self._collect_sources_and_includes()
        self._construct_flags()

    def _ensure_tools_are_present(self):
        """Checks that the platform's toolchain executables can be found on PATH."""
        if self._tools_checked:
            return
        missing = [tool for tool in self.platform.tools() if shutil.which(tool) is None]
        if missing:
            print(f"❌ Error: Toolchain for {self.platform.name} not found: {', '.join(missing)}", file=sys.stderr)
            hint = getattr(self.config, "TOOLCHAIN_HINTS", {}).get(self.platform.name)
            if hint:
                print(f"   {hint}", file=sys.stderr)
            sys.exit(1)
        self._tools_checked = True

    def _collect_sources_and_includes(self):
        """Iterates through the project's components and collects the active sources and include paths."""
        # Each entry is (source path, path relative to the build directory without extension).
        self.sources = []
        # Source path -> stem relative to its own module, for goals such as 'msp432/startup.o'.
        self._module_stems = {}
        self.include_paths = []

        print("🔎 Analyzing project components...")
        for name, component in self.config.COMPONENTS.items():
            if not component.get("enabled", False):
                print(f"  - Disabling component: {name}")
                continue
            platforms = component.get("platforms")
            if platforms and self.platform.name not in platforms:
                print(f"  - Skipping component: {name} (not used on {self.platform.name})")
                continue

            print(f"  - Enabling component: {name}")
            module = component.get("module", self.project_name)

            for src in component.get("c_sources", []):
                src_path = os.path.join(module, src)
                stem = os.path.splitext(os.path.normpath(src))[0]
                self._module_stems[src_path] = stem
                # Sources borrowed from a shared module keep the module name to avoid clashes.
                if module != self.project_name:
                    stem = os.path.join(module, stem)
                self.sources.append((src_path, stem))

            for inc_path in component.get("include_paths", []):
                path = inc_path[2:] if inc_path.startswith("-I") else inc_path
                self.include_paths.append(f"-I{os.path.join(module, path)}")

        self.include_paths = sorted(set(self.include_paths))

    def _construct_flags(self):
        """Builds the final lists of CFLAGS, CPPFLAGS and LDFLAGS for the selected platform."""
        self.cflags = self.platform.machine_flags() + list(self.config.GCFLAGS)
        self.cppflags = self.platform.defines + list(getattr(self.config, "GLOBAL_C_DEFINES", []))

        self.map_path = os.path.join(self.build_dir, f"{self.target_name}.map")
        self.ldflags = [f"-Wl,-Map={self.map_path}"]
        self.linker_script = getattr(self.config, "LINKER_SCRIPT", None)
        if self.platform.needs_linker_script and self.linker_script:
            self.ldflags.extend(["-T", self.linker_script])

    def _ensure_linker_script(self):
        """Stops a link on a platform that needs a linker script when none is configured."""
        if self.platform.needs_linker_script and not self.linker_script:
            print(f"❌ Error: Platform {self.platform.name} requires LINKER_SCRIPT in {self.project_name}/config.py.", file=sys.stderr)
            sys.exit(1)

    @staticmethod
    def run_command(cmd, stdout_path=None):
        """
        Executes a command, prints it, and exits on failure.

        Args:
            cmd (list): The command and its arguments.
            stdout_path (str, optional): File that receives the command's
                standard output, like a shell '>' redirect.
        """
        cmd_str = ' '.join([str(arg).replace('\\', '/') for arg in cmd])
        if stdout_path:
            cmd_str += f" > {stdout_path}"
        print(f"🚀 Executing: {cmd_str}")
        try:
            if stdout_path:
                with open(stdout_path, 'w') as out_file:
                    subprocess.run(cmd, check=True, stdout=out_file)
            else:
                subprocess.run(cmd, check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            print(f"❌ Error: Command failed: {e}", file=sys.stderr)
            sys.exit(1)

    # --------------------------------------------------------------------------
    # Paths and goal resolution
    # --------------------------------------------------------------------------
    def _output_path(self, stem, ext):
        """
        Generates the path of an output file inside the platform build directory.

        Example:
            - stem: "src/main", ext: ".o", platform: HOST
            - Returns: "build/prj_c1m2/HOST/src/main.o"
        """
        return os.path.join(self.build_dir, stem + ext)

    @property
    def executable_path(self):
        return os.path.join(self.build_dir, f"{self.target_name}.out")

    @property
    def disassembly_path(self):
        return os.path.join(self.build_dir, f"{self.target_name}.asm")

    def _find_source(self, goal_stem):
        """
        Matches the stem of a file goal against the collected sources.

        A bare name ('main') matches by basename; a path ('src/main') must match
        the source's path relative to its module, or its full path.
        Returns the (source, stem) pair, or None when nothing matches.
        """
        goal_stem = os.path.normpath(goal_stem)
        by_path = [entry for entry in self.sources
                   if goal_stem in (entry[1], self._module_stems[entry[0]],
                                    os.path.splitext(os.path.normpath(entry[0]))[0])]
        if by_path:
            return by_path[0]

        if os.sep in goal_stem or "/" in goal_stem:
            return None
        by_name = [entry for entry in self.sources if os.path.basename(entry[1]) == goal_stem]
        if len(by_name) > 1:
            candidates = ", ".join(entry[1] for entry in by_name)
            print(f"❌ Error: '{goal_stem}' is ambiguous; use one of: {candidates}", file=sys.stderr)
            sys.exit(NO_RULE_EXIT_CODE)
        return by_name[0] if by_name else None

    @staticmethod
    def _no_rule(goal, needed_by=None):
        """Reports a goal no rule can produce and exits like make does."""
        reason = f", needed by '{needed_by}'" if needed_by else ""
        print(f"❌ Error: No rule to make target '{goal}'{reason}.", file=sys.stderr)
        sys.exit(NO_RULE_EXIT_CODE)

    # --------------------------------------------------------------------------
    # Incremental build checks
    # --------------------------------------------------------------------------
    def _parse_dependencies(self, dep_file):
        """
        Parses a GCC-generated dependency file (.d) to extract all header dependencies.
        This is used for incremental build checks.
        """
        if not os.path.exists(dep_file):
            return []
        with open(dep_file, 'r') as f:
            content = f.read()
        return re.findall(r'([^\s\\]+\.(?:h|inc))', content)

    def _is_rebuild_needed(self, src_file, out_file, dep_file=None):
        """
        Checks if an output needs to be regenerated from its source.
        A rebuild is needed if:
        1. The output file does not exist.
        2. The source file is newer than the output file.
        3. A dependency file is expected but missing, or any header it lists
           is newer than the output file.
        """
        if not os.path.exists(out_file):
            return True

        out_mtime = os.path.getmtime(out_file)
        if os.path.getmtime(src_file) > out_mtime:
            return True

        if dep_file is not None:
            if not os.path.exists(dep_file):
                return True
            for dep in self._parse_dependencies(dep_file):
                if os.path.exists(dep) and os.path.getmtime(dep) > out_mtime:
                    print(f"    -> Dependency '{dep}' changed.")
                    return True
        return False

    def _run_rule(self, src, out_file, cmd, dep_file=None):
        """Runs one pattern rule unless its output is up to date. Returns True when it ran."""
        if not os.path.isfile(src):
            self._no_rule(src, needed_by=out_file)

        print(f"  - Checking '{out_file}'...")
        if not self._is_rebuild_needed(src, out_file, dep_file):
            print("    -> Up-to-date. Skipping.")
            return False

        os.makedirs(os.path.dirname(out_file), exist_ok=True)
        self.run_command(cmd)
        return True

    # --------------------------------------------------------------------------
    # Pattern rules
    # --------------------------------------------------------------------------
    def preprocess(self, entry):
        """%.i: %.c -- stop after the preprocessor."""
        src, stem = entry
        out = self._output_path(stem, ".i")
        cmd = [self.platform.cc, "-E"] + self.cppflags + self.include_paths + [src, "-o", out]
        self._run_rule(src, out, cmd, self._output_path(stem, ".d"))
        return out

    def generate_dependencies(self, entry):
        """%.d: %.c -- write the make-format list of headers the source includes."""
        src, stem = entry
        out = self._output_path(stem, ".d")
        cmd = [self.platform.cc, "-E", "-M"] + self.cppflags + self.include_paths + [src, "-o", out]
        self._run_rule(src, out, cmd)
        return out

    def compile_to_assembly(self, entry):
        """%.asm: %.c -- stop after compilation proper, do not assemble."""
        src, stem = entry
        out = self._output_path(stem, ".asm")
        cmd = [self.platform.cc, "-S"] + self.cflags + self.cppflags + self.include_paths + [src, "-o", out]
        self._run_rule(src, out, cmd, self._output_path(stem, ".d"))
        return out

    def compile_object(self, entry):
        """%.o: %.c -- compile but do not link."""
        src, stem = entry
        out = self._output_path(stem, ".o")
        cmd = [self.platform.cc, "-c"] + self.cflags + self.cppflags + self.include_paths + [src, "-o", out]
        self._run_rule(src, out, cmd, self._output_path(stem, ".d"))
        return out

    def disassemble(self, exe_path, asm_path=None):
        """%.asm: %.out -- dump the linked executable with objdump."""
        asm_path = asm_path or os.path.splitext(exe_path)[0] + ".asm"
        if os.path.exists(asm_path) and os.path.getmtime(asm_path) >= os.path.getmtime(exe_path):
            print(f"  - '{asm_path}' is up-to-date.")
            return asm_path
        self.run_command([self.platform.objdump, "-D", exe_path], stdout_path=asm_path)
        return asm_path

    PATTERN_RULES = {
        ".i": "preprocess",
        ".d": "generate_dependencies",
        ".asm": "compile_to_assembly",
        ".o": "compile_object",
    }

    # --------------------------------------------------------------------------
    # Named goals
    # --------------------------------------------------------------------------
    def _for_each_source(self, rule):
        """Applies a pattern rule to every source, concurrently when jobs > 1."""
        if self.jobs == 1 or len(self.sources) < 2:
            return [rule(entry) for entry in self.sources]
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.jobs) as executor:
            return list(executor.map(rule, self.sources))

    def compile_sources(self):
        """Compiles every source into an object file, skipping unchanged files."""
        print("⚙️  Compiling sources...")
        return self._for_each_source(self.compile_object)

    def compile_all(self):
        """Compiles all object files, but doesn't link."""
        objects = self.compile_sources()
        print("\n✅ Compile complete.")
        return objects

    def link_objects(self, object_files, dep_files=()):
        """
        Links all compiled object files into the final executable, then reports
        its size and writes its disassembly. Skipped when every object and
        dependency file is older than the existing executable.
        """
        exe_path = self.executable_path
        if os.path.exists(exe_path):
            exe_mtime = os.path.getmtime(exe_path)
            prerequisites = list(object_files) + list(dep_files)
            if all(os.path.getmtime(path) <= exe_mtime for path in prerequisites):
                print(f"🔗 '{exe_path}' is up-to-date.")
                return exe_path

        print(f"🔗 Linking objects (using {self.platform.cc})...")
        os.makedirs(self.build_dir, exist_ok=True)
        cmd = [self.platform.cc] + self.cflags + self.cppflags + self.ldflags + object_files + ["-o", exe_path]
        self.run_command(cmd)

        print("📊 Calculating size...")
        self.run_command([self.platform.size, exe_path])
        self.disassemble(exe_path, self.disassembly_path)
        return exe_path

    def build_executable(self):
        """Generates dependency files and objects, then links them."""
        self._ensure_linker_script()
        print("📄 Generating dependency files...")
        dep_files = self._for_each_source(self.generate_dependencies)
        objects = self.compile_sources()
        return self.link_objects(objects, dep_files)

    def build_all(self):
        """Runs the entire build: dependencies, objects (incrementally) and the executable."""
        exe_path = self.build_executable()
        print("\n✅ Build complete.")
        return exe_path

    def clean(self):
        """Removes every generated file for all platforms of the project."""
        print(f"🧹 Cleaning build directory: {self.project_build_dir}")
        if not os.path.isdir(self.project_build_dir):
            print("Clean complete.")
            return

        for dirpath, _, filenames in os.walk(self.project_build_dir, topdown=False):
            for filename in filenames:
                if filename.endswith(OUTPUT_EXTENSIONS):
                    os.remove(os.path.join(dirpath, filename))
            if not os.listdir(dirpath):
                os.rmdir(dirpath)
        print("Clean complete.")

    def make_file(self, goal):
        """Produces a single file goal such as 'main.i', 'src/memory.o', 'c1m2.out' or 'c1m2.asm'."""
        stem, ext = os.path.splitext(goal)
        if ext == ".out" and stem == self.target_name:
            return self.build_executable()

        rule = self.PATTERN_RULES.get(ext)
        if rule is None:
            self._no_rule(goal)

        entry = self._find_source(stem)
        if entry is not None:
            return getattr(self, rule)(entry)

        # %.asm: %.out applies when no C source has the stem but the executable does.
        if ext == ".asm" and stem == self.target_name:
            exe_path = self.build_executable()
            return self.disassemble(exe_path, self.disassembly_path)

        self._no_rule(goal)

    def make(self, goal):
        """Runs one goal, named or file."""
        if goal == "clean":
            self.clean()
            return

        self._ensure_tools_are_present()
        if goal in ("build", "all"):
            self.build_all()
        elif goal == "compile-all":
            self.compile_all()
        elif goal == "rebuild":
            self.clean()
            self.build_all()
        else:
            self.make_file(goal)
