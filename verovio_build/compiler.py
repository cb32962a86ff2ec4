"""
Compilation of the Verovio C++ sources into a static library.

Flags and defines match the defaults of Verovio's CMakeLists.txt. Every
translation unit is compiled in turn, then all objects are archived into a
single library. Toolchain diagnostics go straight to the terminal.
"""

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import CompilationError
from .platforms import TargetPlatform
from .release import LIBRARY_NAME


INCLUDE_DIRS = [
    "include",
    "include/vrv",
    "include/crc",
    "include/midi",
    "include/hum",
    "include/json",
    "include/pugi",
    "include/zip",
    "libmei/dist",
    "libmei/addons",
]

WINDOWS_INCLUDE_DIR = "include/win32"

RESOURCE_DIR = "/usr/local/share/verovio"

GNU_WARNING_FLAGS = [
    "-Wall",
    "-W",
    "-pedantic",
    "-Wno-unused-parameter",
    "-Wno-dollar-in-identifier-extension",
    "-Wno-conversion",
    "-Wno-float-conversion",
    "-Wno-missing-braces",
    "-Wno-missing-field-initializers",
    "-Wno-overloaded-virtual",
    "-Wno-shadow",
    "-Wno-sign-conversion",
    "-Wno-trigraphs",
    "-Wno-unknown-pragmas",
    "-Wno-unused-label",
]

MSVC_FLAGS = ["/bigobj", "/W2", "/wd4244"]

# cl.exe has no /O0 or /O3.
MSVC_OPT_FLAGS = {"0": "/Od", "1": "/O1", "2": "/O2", "3": "/O2", "s": "/O1", "z": "/O1"}

# (directory, extension, required)
SOURCE_GROUPS = [
    ("src", ".cpp", True),
    ("src/hum", ".cpp", False),
    ("src/midi", ".cpp", True),
    ("src/crc", ".cpp", True),
    ("libmei/dist", ".cpp", True),
    ("libmei/addons", ".cpp", True),
]

SINGLE_SOURCES = [
    "src/json/jsonxx.cc",
    "src/pugi/pugixml.cpp",
    "tools/c_wrapper.cpp",
]

EXCLUDED_SOURCES = {"main.cpp"}

VERSION_HEADER = "include/vrv/git_commit.h"

VERSION_HEADER_CONTENT = (
    "////////////////////////////////////////////////////////\n"
    "/// Git commit version file generated at compilation ///\n"
    "////////////////////////////////////////////////////////\n"
    "\n"
    "#define GIT_COMMIT \"\"\n"
    "\n"
)

Define = Tuple[str, Optional[str]]


@dataclass
class BuildConfiguration:
    """Include directories, preprocessor defines and flags for one target."""
    include_dirs: List[Path] = field(default_factory=list)
    defines: List[Define] = field(default_factory=list)
    flags: List[str] = field(default_factory=list)
    msvc: bool = False

    @classmethod
    def for_target(cls, target: TargetPlatform, source_root: Union[str, Path],
                   opt_level: str = "2", extra_flags: Optional[List[str]] = None) -> "BuildConfiguration":
        """
        Derive the configuration for a target.

        Args:
            target: Platform being compiled for
            source_root: Root of the Verovio source tree
            opt_level: Optimisation level, e.g. "0", "2", "s"
            extra_flags: Additional flags appended last (e.g. from CXXFLAGS)
        """
        source_root = Path(source_root)
        config = cls(msvc=target.is_msvc)

        config.include_dirs = [source_root / d for d in INCLUDE_DIRS]
        if target.is_windows:
            config.include_dirs.append(source_root / WINDOWS_INCLUDE_DIR)

        config.defines = [
            ("NO_DARMS_SUPPORT", None),
            ("NO_RUNTIME", None),
            ("RESOURCE_DIR", f'"{RESOURCE_DIR}"'),
        ]

        if target.is_msvc:
            config.flags = ["/nologo", "/std:c++20", "/EHsc", MSVC_OPT_FLAGS.get(str(opt_level), "/O2")] + MSVC_FLAGS
            config.defines.append(("NO_PAE_SUPPORT", None))
            config.defines.append(("USE_PAE_OLD_PARSER", None))
        else:
            config.flags = ["-std=c++20", f"-O{opt_level}"]
            if not target.is_windows:
                config.flags.append("-fPIC")
            config.flags.extend(GNU_WARNING_FLAGS)

        if extra_flags:
            config.flags.extend(extra_flags)
        return config

    def define_args(self) -> List[str]:
        prefix = "/D" if self.msvc else "-D"
        args = []
        for name, value in self.defines:
            args.append(f"{prefix}{name}" if value is None else f"{prefix}{name}={value}")
        return args

    def include_args(self) -> List[str]:
        prefix = "/I" if self.msvc else "-I"
        return [f"{prefix}{d}" for d in self.include_dirs]


def collect_sources(source_root: Union[str, Path]) -> List[Path]:
    """
    Enumerate the translation units that make up the library.

    Args:
        source_root: Root of the Verovio source tree

    Returns:
        Sorted list of source files

    Raises:
        CompilationError: A required source group is missing
    """
    source_root = Path(source_root)
    sources: List[Path] = []

    for directory, extension, required in SOURCE_GROUPS:
        group_dir = source_root / directory
        if not group_dir.is_dir():
            if required:
                raise CompilationError(f"Required source directory not found: {group_dir}")
            continue
        for path in sorted(group_dir.iterdir()):
            if path.suffix == extension and path.is_file() and path.name not in EXCLUDED_SOURCES:
                sources.append(path)

    for relative in SINGLE_SOURCES:
        path = source_root / relative
        if not path.is_file():
            raise CompilationError(f"Required source file not found: {path}")
        sources.append(path)

    return sources


def ensure_version_header(source_root: Union[str, Path]) -> bool:
    """
    Write a placeholder git_commit.h if the tree does not have one.

    Returns:
        True if the header was created, False if it already existed
    """
    header = Path(source_root) / VERSION_HEADER
    if header.exists():
        return False
    # "x" mode: never overwrite a header that appeared in the meantime.
    try:
        header.parent.mkdir(parents=True, exist_ok=True)
        with open(header, "x") as f:
            f.write(VERSION_HEADER_CONTENT)
    except FileExistsError:
        return False
    except OSError as e:
        raise CompilationError(
            f"Failed to write placeholder {header}: {e}\n"
            "The Verovio source tree must be writable, or already contain this header."
        ) from e
    return True


def object_name(source: Path, source_root: Path, msvc: bool) -> str:
    """Object file name unique across source groups."""
    relative = source.relative_to(source_root).with_suffix("")
    stem = "_".join(relative.parts)
    return f"{stem}.obj" if msvc else f"{stem}.o"


class CompilerInvoker:
    """Compiles a Verovio source tree into a static library."""

    def __init__(self, target: TargetPlatform, out_dir: Union[str, Path],
                 logger: Optional[logging.Logger] = None, compiler: Optional[str] = None,
                 archiver: Optional[str] = None, opt_level: str = "2",
                 extra_flags: Optional[List[str]] = None):
        """
        Initialize the invoker.

        Args:
            target: Platform being compiled for
            out_dir: Per-build output directory
            logger: Diagnostic sink
            compiler: C++ compiler command (defaults to $CXX, c++ or cl.exe)
            archiver: Static archiver command (defaults to $AR, ar or lib.exe)
            opt_level: Optimisation level
            extra_flags: Flags appended to every compile (defaults to $CXXFLAGS)
        """
        self.target = target
        self.out_dir = Path(out_dir)
        self.logger = logger or logging.getLogger("verovio-build.compiler")
        self.opt_level = opt_level
        default_cc = "cl.exe" if target.is_msvc else "c++"
        default_ar = "lib.exe" if target.is_msvc else "ar"
        self.compiler = shlex.split(compiler or os.environ.get("CXX") or default_cc)
        self.archiver = shlex.split(archiver or os.environ.get("AR") or default_ar)
        if extra_flags is None:
            extra_flags = shlex.split(os.environ.get("CXXFLAGS", ""))
        self.extra_flags = extra_flags

    @property
    def library_path(self) -> Path:
        return self.out_dir / self.target.static_lib_name

    def configuration(self, source_root: Path) -> BuildConfiguration:
        return BuildConfiguration.for_target(
            self.target, source_root, opt_level=self.opt_level, extra_flags=self.extra_flags
        )

    def _run(self, command: List[str], what: str) -> None:
        self.logger.debug(" ".join(command))
        try:
            # Compiler output is passed through untouched; stdout is kept off
            # our own stdout, which carries link directives.
            result = subprocess.run(command, stdout=sys.stderr, check=False)
        except OSError as e:
            raise CompilationError(f"Failed to run {command[0]}: {e}", command=command) from e
        if result.returncode != 0:
            raise CompilationError(
                f"{what} failed with exit status {result.returncode}",
                command=command,
                returncode=result.returncode,
            )

    def compile_command(self, config: BuildConfiguration, source: Path, obj: Path) -> List[str]:
        if config.msvc:
            return (self.compiler + config.flags + config.define_args() + config.include_args()
                    + ["/c", str(source), f"/Fo{obj}"])
        return (self.compiler + config.flags + config.define_args() + config.include_args()
                + ["-c", str(source), "-o", str(obj)])

    def archive_command(self, objects: List[Path]) -> List[str]:
        library = self.library_path
        if self.target.is_msvc:
            return self.archiver + ["/nologo", f"/OUT:{library}"] + [str(o) for o in objects]
        return self.archiver + ["crs", str(library)] + [str(o) for o in objects]

    def compile(self, source_root: Union[str, Path]) -> Path:
        """
        Compile every translation unit and archive the result.

        Args:
            source_root: Validated Verovio source tree

        Returns:
            Path to the static library in out_dir

        Raises:
            CompilationError: Any compile or archive step failed
        """
        source_root = Path(source_root)
        sources = collect_sources(source_root)
        config = self.configuration(source_root)

        obj_dir = self.out_dir / "verovio-obj"
        try:
            obj_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CompilationError(f"Failed to create object directory {obj_dir}: {e}") from e

        self.logger.warning(f"Compiling {len(sources)} Verovio sources for {self.target}, this may take several minutes")
        objects = []
        for index, source in enumerate(sources, 1):
            obj = obj_dir / object_name(source, source_root, config.msvc)
            self.logger.debug(f"[{index}/{len(sources)}] {source.relative_to(source_root)}")
            self._run(self.compile_command(config, source, obj), f"Compiling {source}")
            objects.append(obj)

        library = self.library_path
        # ar appends to an existing archive; start fresh.
        try:
            library.unlink(missing_ok=True)
        except OSError as e:
            raise CompilationError(f"Failed to remove stale library {library}: {e}") from e
        self._run(self.archive_command(objects), f"Archiving {LIBRARY_NAME}")
        self.logger.info(f"Built {library}")
        return library
