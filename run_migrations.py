#!/usr/bin/env python
"""Script to run database migrations."""

import asyncio

from leetdash.core.db import init_models

if __name__ == "__main__":
    print("Running database migrations...")
    asyncio.run(init_models())
    print("Migrations completed successfully!")
