"""
Link directives for the outer build orchestrator.

Directives are written one per line as ``cargo:<key>=<value>``, which is the
protocol the orchestrator reads from this tool's stdout.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, TextIO, Union

from .platforms import TargetPlatform
from .release import LIBRARY_NAME


OVERRIDE_ENV_VAR = "VEROVIO_SOURCE_DIR"

WRAPPER_SOURCES = ["tools/c_wrapper.cpp", "tools/c_wrapper.h"]


@dataclass(frozen=True)
class LinkDirective:
    key: str
    value: str

    def render(self) -> str:
        return f"cargo:{self.key}={self.value}"


def cxx_runtime(target: TargetPlatform) -> Optional[str]:
    """
    Name of the C++ standard library to link for a target.

    MSVC links its runtime automatically, and unknown systems get nothing
    rather than a guess.
    """
    if target.is_macos:
        return "c++"
    if target.is_linux:
        return "stdc++"
    if target.is_windows:
        if target.is_msvc:
            return None
        if target.env.startswith("gnu"):
            return "stdc++"
    return None


def link_directives(target: TargetPlatform, search_path: Union[str, Path]) -> List[LinkDirective]:
    """Directives linking the static Verovio library and its C++ runtime."""
    directives = [
        LinkDirective("rustc-link-search", f"native={search_path}"),
        LinkDirective("rustc-link-lib", f"static={LIBRARY_NAME}"),
    ]
    runtime = cxx_runtime(target)
    if runtime:
        directives.append(LinkDirective("rustc-link-lib", runtime))
    return directives


def rerun_directives(source_root: Optional[Union[str, Path]] = None) -> List[LinkDirective]:
    """Inputs whose change should trigger this pipeline again."""
    directives = [LinkDirective("rerun-if-env-changed", OVERRIDE_ENV_VAR)]
    if source_root is not None:
        for relative in WRAPPER_SOURCES:
            directives.append(LinkDirective("rerun-if-changed", str(Path(source_root) / relative)))
    return directives


def emit(directives: List[LinkDirective], stream: TextIO, fmt: str = "cargo") -> None:
    """Write directives to a stream in the requested format."""
    if fmt == "json":
        json.dump([asdict(d) for d in directives], stream, indent=2)
        stream.write("\n")
        return
    for directive in directives:
        stream.write(directive.render() + "\n")
