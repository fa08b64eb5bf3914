"""Upload a local image to the shop's file library."""

from __future__ import annotations

import asyncio
import json
import pathlib
import sys

from dotenv import load_dotenv

from schedulr.shopify.client import AdminClient, HttpObjectUploader
from schedulr.shopify.models import ImageUpload
from schedulr.shopify.uploads import StagedUploadCoordinator
from schedulr.utils.logs import configure_logging


async def main(path: pathlib.Path) -> int:
    load_dotenv()
    configure_logging()
    client = AdminClient.from_env()
    uploader = HttpObjectUploader()
    try:
        with path.open("rb") as handle:
            image = ImageUpload.from_source(handle, path.name)
        result = await StagedUploadCoordinator(client, uploader).upload(image)
    finally:
        await client.close()
        await uploader.close()
    print(json.dumps(result.to_payload(), indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    if len(sys.argv) != 2:
        raise SystemExit("usage: upload_banner.py PATH")
    raise SystemExit(asyncio.run(main(pathlib.Path(sys.argv[1]))))
