# kaizen_player/__main__.py
from __future__ import annotations

import argparse
from typing import List, Optional

from .app import run_app


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="kaizen_player", description="Narrated before/after process video player")
    parser.add_argument("root_dir", nargs="?", default=None, help="data directory holding library.json and config.json")
    args = parser.parse_args(argv)
    return run_app(args.root_dir)


if __name__ == "__main__":
    raise SystemExit(main())
