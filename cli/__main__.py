"""
Entry point for running vocab-store as a module.

Usage:
    python -m cli status
    python -m cli concepts list
    python -m cli journal add "Noticed this word today" --concept concept-42
    python -m cli reset --yes
"""

import asyncio
from .commands import main

if __name__ == "__main__":
    asyncio.run(main())
