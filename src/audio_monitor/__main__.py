"""Audio monitor entry point.

Supports: python -m audio_monitor
"""

from .app import main

if __name__ == "__main__":
    main()
