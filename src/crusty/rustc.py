"""
Downstream Rust Compiler Invocation
===================================

Runs ``rustc`` on a generated Rust file to produce a native binary.

Usage:
    result = invoke_rustc("hello.rs", "hello")
    if not result.success:
        print(result.error_message())
        for diagnostic in result.parse_errors():
            print(diagnostic.code, diagnostic.message)

A missing rustc executable or a compile that runs past the timeout
raises DownstreamCompilerError. A compile that runs and fails returns a
RustcResult with ``success=False``; the caller decides how to report it.
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from crusty.errors import DownstreamCompilerError

logger = logging.getLogger(__name__)

# "error[E0425]: cannot find value `x` in this scope" or "error: aborting ..."
_ERROR_LINE = re.compile(r"^error(?:\[(?P<code>E\d+)\])?: (?P<message>.*)$")


@dataclass(frozen=True)
class RustcDiagnostic:
    """
    One error reported by rustc.

    Attributes:
        code: Error code such as ``E0425``, or None for uncoded errors
        message: The text after ``error...: ``
    """
    code: Optional[str]
    message: str


@dataclass
class RustcResult:
    """
    Outcome of one rustc run.

    Attributes:
        success: True when rustc exited with status 0
        stdout: Captured standard output
        stderr: Captured standard error (where rustc writes diagnostics)
        exit_code: Process exit status
    """
    success: bool
    stdout: str
    stderr: str
    exit_code: int

    def error_message(self) -> str:
        """Summary line plus the captured stderr."""
        return f"rustc compilation failed (exit code: {self.exit_code}):\n{self.stderr}"

    def parse_errors(self) -> list[RustcDiagnostic]:
        """Extract the ``error`` lines from stderr, in order."""
        diagnostics = []
        for line in self.stderr.splitlines():
            match = _ERROR_LINE.match(line.strip())
            if match:
                diagnostics.append(RustcDiagnostic(match.group("code"), match.group("message")))
        return diagnostics


def invoke_rustc(
    rust_file,
    output_binary,
    rustc: str = "rustc",
    flags: Sequence[str] = (),
    timeout: float = 120.0,
) -> RustcResult:
    """
    Compile a Rust source file with rustc.

    Args:
        rust_file: Path of the Rust source
        output_binary: Path of the executable to write
        rustc: rustc executable name or path
        flags: Extra command-line flags, placed before the input file
        timeout: Seconds to wait before giving up

    Returns:
        RustcResult describing the run

    Raises:
        DownstreamCompilerError: If rustc is not found or times out
    """
    compiler = Path(rustc).name
    cmd = [rustc, *flags, str(rust_file), "-o", str(output_binary)]
    logger.debug("Running %s", " ".join(cmd))

    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise DownstreamCompilerError(
            f"{rustc} not found - is the Rust toolchain installed?", compiler=compiler
        ) from e
    except subprocess.TimeoutExpired as e:
        raise DownstreamCompilerError(
            f"compilation of {rust_file} timed out after {timeout:g}s", compiler=compiler
        ) from e

    logger.debug("%s exited with status %d", compiler, completed.returncode)
    return RustcResult(
        success=completed.returncode == 0,
        stdout=completed.stdout,
        stderr=completed.stderr,
        exit_code=completed.returncode,
    )
