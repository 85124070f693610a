#!/usr/bin/env python3
"""
vocab-store — on-device learning data maintenance

Inspects and edits the local store behind the vocabulary app: onboarding
state, concept progress, journal entries, settings and pathway progress.

Usage:
    python vocab-store.py status
    python vocab-store.py --data-dir ./data concepts list
    python vocab-store.py reset --yes

This file is a thin wrapper around the cli package.
"""

import asyncio
from cli.commands import main

if __name__ == "__main__":
    asyncio.run(main())
