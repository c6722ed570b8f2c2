from __future__ import annotations

import sys
from pathlib import Path


def _ensure_paths() -> None:
    # Make `import yolo_stream` work without an editable install, and let test
    # modules share the fakes in tests/fakes.py.
    tests_dir = Path(__file__).resolve().parent
    for p in (tests_dir.parent, tests_dir):
        if str(p) not in sys.path:
            sys.path.insert(0, str(p))


_ensure_paths()
