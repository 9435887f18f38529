"""Helpers to run a CalcLang program in a small, controlled subprocess.

This module provides `run_program_in_subprocess`, a convenience wrapper that
launches the `_subprocess_worker` helper (which follows a simple
JSON-over-stdin/stdout protocol). The interpreter core has no fuel limit, so
a program whose loop never terminates would run forever in-process; the
child process is bounded by a wall-clock timeout and, on POSIX, by light
OS-level resource limits (CPU seconds and address space).

Behavior and guarantees:
  - On POSIX, optional RLIMIT_CPU and RLIMIT_AS limits are applied using a
    preexec function. On Windows these limits are no-ops.
  - The worker is launched as a short-lived process with closed file
    descriptors and a minimal environment.
  - The function returns (returncode, stdout, stderr). A returncode of -1
    indicates the process was terminated due to timeout.
"""

import json
import logging
import math
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# repository root, so the child can import the `backend` package
_ROOT = Path(__file__).resolve().parents[2]
WORKER_MODULE = "backend.calclang._subprocess_worker"


def _make_posix_preexec(cpu_seconds: Optional[int], mem_limit_mb: Optional[int]):
    """Return a preexec_fn that applies resource limits on POSIX systems.

    If the `resource` module is unavailable the function becomes a no-op.
    """
    def preexec():
        try:
            import resource
        except ImportError:
            return
        if cpu_seconds is not None:
            resource.setrlimit(resource.RLIMIT_CPU, (int(cpu_seconds), int(cpu_seconds)))
        if mem_limit_mb is not None:
            mem_bytes = int(mem_limit_mb) * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (mem_bytes, mem_bytes))
        # Start a new session to isolate signals
        try:
            os.setsid()
        except OSError:
            pass

    return preexec


def run_program_in_subprocess(
    program: List[Dict[str, Any]],
    timeout_s: float = 2,
    *,
    cpu_seconds: Optional[int] = 2,
    mem_limit_mb: Optional[int] = 256,
    global_vars: Optional[Dict[str, float]] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Tuple[int, str, str]:
    """Run a JSON-encoded program in the worker and return its outputs.

    Parameters:
      - program: the program in its JSON wire form (see `ast_codec`).
      - timeout_s: wall-clock timeout for the whole operation (seconds).
      - cpu_seconds: optional RLIMIT_CPU (seconds) applied on POSIX.
      - mem_limit_mb: optional RLIMIT_AS (MB) applied on POSIX.
      - global_vars, settings: forwarded to `Interpreter.run` in the child.

    Returns (returncode, stdout, stderr). On timeout the function will kill
    the process and return (-1, "", "TIMEOUT").
    """
    # Keep the child's environment minimal to reduce accidental access to
    # host secrets; PYTHONPATH lets it import this package.
    env = {"PATH": os.environ.get("PATH", ""), "PYTHONPATH": str(_ROOT)}

    popen_kwargs: Dict[str, Any] = dict(
        args=[sys.executable, "-m", WORKER_MODULE],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
        cwd=str(_ROOT),
        close_fds=True,
    )
    if os.name != "nt":
        popen_kwargs["preexec_fn"] = _make_posix_preexec(cpu_seconds, mem_limit_mb)

    payload = json.dumps(
        {"program": program, "global_vars": global_vars or {}, "settings": settings or {}}
    )
    if not math.isfinite(timeout_s) or timeout_s <= 0:
        raise ValueError(f"timeout_s must be a positive finite number, got {timeout_s!r}")

    logger.debug("starting worker (timeout %.1fs)", timeout_s)
    proc = subprocess.Popen(**popen_kwargs)
    try:
        out, err = proc.communicate(payload, timeout=timeout_s)
    except subprocess.TimeoutExpired:
        logger.info("worker killed after %.1fs timeout", timeout_s)
        return -1, "", "TIMEOUT"
    finally:
        # the child must not outlive this call, whatever interrupted communicate()
        if proc.poll() is None:
            proc.kill()
            proc.communicate()

    return proc.returncode, out or "", err or ""
