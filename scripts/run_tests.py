#!/usr/bin/env python
"""
Run the envctl test suite with pytest.

Usage:
    python scripts/run_tests.py            # all tests
    python scripts/run_tests.py server     # tests/test_server.py only
"""

import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def main() -> int:
    target = "tests/"
    if len(sys.argv) > 1:
        name = sys.argv[1].removeprefix("test_").removesuffix(".py")
        target = f"tests/test_{name}.py"

    cmd = [sys.executable, "-m", "pytest", target, "-v", "--tb=short"]
    return subprocess.run(cmd, cwd=PROJECT_ROOT, check=False).returncode


if __name__ == "__main__":
    sys.exit(main())
