from __future__ import annotations

from prdeck.cli import main


if __name__ == "__main__":
    main()
