"""codex-stream entry point.

Supports: python -m codex_stream
"""

from .app import main

if __name__ == "__main__":
    main()
