import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture
def docs_tree(tmp_path: Path) -> Path:
    """``docs/a.txt`` (5 bytes) and ``docs/sub/b.txt`` (10 bytes)."""
    docs = tmp_path / "input" / "docs"
    (docs / "sub").mkdir(parents=True)
    (docs / "a.txt").write_bytes(b"hello")
    (docs / "sub" / "b.txt").write_bytes(b"0123456789")
    return docs


def tree_snapshot(root: Path) -> dict[str, bytes | None]:
    """Relative POSIX path -> file bytes (``None`` for directories)."""
    snapshot: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        snapshot[rel] = None if path.is_dir() else path.read_bytes()
    return snapshot
