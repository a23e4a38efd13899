"""Helpers shared by the test modules."""

import asyncio

from uploads import BlobFile, MemoryBlobService

ADMIN_EMAIL = "admin@shop.com"


def run(coro):
    return asyncio.run(coro)


def image(name="shot.png", content=b"\x89PNG-data"):
    return BlobFile(filename=name, content=content, content_type="image/png")


class FlakyBlobService(MemoryBlobService):
    """Fails any upload whose filename starts with ``bad``."""

    async def upload(self, file):
        if file.filename.startswith("bad"):
            raise ConnectionError("connection reset")
        return await super().upload(file)
