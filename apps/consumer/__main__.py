"""
Consumer Module Entry Point

Allows execution via: python -m apps.consumer
"""

import asyncio

from apps.consumer.service import main

if __name__ == "__main__":
    asyncio.run(main())
