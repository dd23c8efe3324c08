#!/usr/bin/env python3
"""
VapourBox Test Runner

Usage:
    python test.py            # Everything (real-engine tests skip when vspipe/ffmpeg are missing)
    python test.py quick      # Fake engines only, no slow tests
    python test.py engines    # Only tests that drive real vspipe and ffmpeg
    python test.py verbose    # Debug logging, no output capture
    python test.py coverage   # Coverage report for the vapourbox package
    python test.py failed     # Re-run last failures
    python test.py <name>     # tests/test_<name>.py, or a -k filter if no such file
"""

import os
import subprocess
import sys

MODES = {
    "quick": (["-m", "not slow and not requires_engines"], "[QUICK] Fake engines only"),
    "engines": (["-m", "requires_engines"], "[ENGINES] Real vspipe and ffmpeg"),
    "verbose": (["-s", "--tb=long", "--log-cli-level=DEBUG"], "[VERBOSE] Debug output"),
    "coverage": (
        ["--cov=vapourbox", "--cov-report=term-missing", "--cov-report=html:coverage_html"],
        "[COVERAGE] With coverage report",
    ),
    "failed": (["--lf"], "[RETRY] Last failures"),
}


def build_command(args):
    base = [sys.executable, "-m", "pytest"]
    if not args:
        return base + ["tests/", "-v", "--tb=short"], "[TEST] All tests"

    name = args[0]
    if name in MODES:
        extra, label = MODES[name]
        return base + ["tests/", "-v", "--tb=short", *extra], label

    test_file = os.path.join("tests", f"test_{name}.py")
    if os.path.exists(test_file):
        return base + [test_file, "-v", "--tb=short"], f"[MODULE] {test_file}"
    return base + ["tests/", "-v", "--tb=short", "-k", name], f"[FILTER] Tests matching '{name}'"


def main():
    os.chdir(os.path.dirname(os.path.abspath(__file__)))
    cmd, label = build_command(sys.argv[1:])
    print(f"{label}...\n")

    try:
        returncode = subprocess.run(cmd).returncode
    except KeyboardInterrupt:
        print("\n\n[ABORT] Tests interrupted by user")
        return 1

    print("\n" + "=" * 60)
    print("[PASS] All tests passed!" if returncode == 0 else f"[FAIL] Tests failed (exit code: {returncode})")
    print("=" * 60)
    return returncode


if __name__ == "__main__":
    sys.exit(main())
