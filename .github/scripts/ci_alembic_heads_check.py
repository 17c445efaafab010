"""CI gate: the Alembic revision list must stay one straight line.

Startup runs `alembic upgrade head`, which needs exactly one head. A second
root (down_revision = None) or a forked chain makes the order in which
schema changes apply ambiguous.

Usage:
  python .github/scripts/ci_alembic_heads_check.py
"""
from __future__ import annotations

import sys
from pathlib import Path

api_root = Path(__file__).resolve().parents[2] / "apps" / "api"
sys.path.insert(0, str(api_root))

from alembic.config import Config
from alembic.script import ScriptDirectory

EXPECTED_HEAD = "0002"


def load_script_directory() -> ScriptDirectory:
    cfg = Config(str(api_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_root / "alembic"))
    return ScriptDirectory.from_config(cfg)


def main() -> int:
    script = load_script_directory()
    heads = set(script.get_heads())

    if heads != {EXPECTED_HEAD}:
        print("MIGRATION HEAD CHECK FAILED")
        print(f"  Expected head: {EXPECTED_HEAD}")
        print(f"  Actual heads:  {sorted(heads)}")
        print()
        print("  Fix: chain the new revision off the current head, then bump EXPECTED_HEAD.")
        return 1

    revisions = list(script.walk_revisions())
    roots = [r.revision for r in revisions if r.down_revision is None]
    if len(roots) != 1:
        print("MIGRATION ROOT CHECK FAILED")
        print(f"  Expected a single root, found {len(roots)}: {sorted(roots)}")
        return 1

    print(f"Migration integrity check: OK (head {EXPECTED_HEAD}, {len(revisions)} revisions)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
