"""Entry point for `python -m chatmedia` and the `chatmedia` console script."""

from __future__ import annotations

from chatmedia.cli import main

if __name__ == "__main__":
    main()
