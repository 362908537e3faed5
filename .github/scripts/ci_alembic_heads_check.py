"""CI gate: the Alembic migration graph must stay a single linear chain.

A second root (down_revision = None) or a second head makes
`alembic upgrade head` ambiguous on deploy. New migrations chain off the
current head.

Usage:
  python .github/scripts/ci_alembic_heads_check.py
"""
from __future__ import annotations

import sys
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

api_root = Path(__file__).resolve().parents[2] / "apps" / "api"


def main() -> int:
    cfg = Config(str(api_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_root / "alembic"))

    script = ScriptDirectory.from_config(cfg)
    heads = sorted(script.get_heads())
    revisions = list(script.walk_revisions())
    roots = sorted(r.revision for r in revisions if r.down_revision is None)

    failed = False
    if len(heads) != 1:
        print("MIGRATION HEAD CHECK FAILED")
        print(f"  Expected exactly one head, found {len(heads)}: {heads}")
        print("  Fix: chain the new migration off the existing head, or add a merge revision.")
        failed = True

    if len(roots) != 1:
        print("MIGRATION ROOT CHECK FAILED")
        print(f"  Expected exactly one root, found {len(roots)}: {roots}")
        print("  Fix: new migrations must not use down_revision = None.")
        failed = True

    if failed:
        return 1

    print(f"Migration integrity check: OK (head {heads[0]}, {len(revisions)} revisions)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
