#!/usr/bin/env python3
"""
Seed the campus locations into the document store.

Usage:
    python scripts/init_locations.py
    python scripts/init_locations.py --backend memory

Environment Variables:
    DOCUMENT_STORE_BACKEND: firestore (default) or memory
    FIREBASE_CREDENTIALS_PATH / FIREBASE_CONFIG_JSON: Firebase service account
"""

import argparse
import asyncio

import dotenv

dotenv.load_dotenv()

from app.config import settings  # noqa: E402
from app.core.firebase import initialize_firebase  # noqa: E402
from app.database import close_document_store, create_document_store  # noqa: E402
from app.services.location_service import LocationService  # noqa: E402


async def init_locations(backend: str) -> None:
    """Add the default locations that do not exist yet."""
    if backend == "firestore":
        initialize_firebase(settings.firebase_credentials_path, settings.firebase_config_json)

    store = create_document_store(backend)
    try:
        added = await LocationService(store).seed_locations()
    finally:
        await store.close()
        await close_document_store()

    if added:
        print(f"✓ Added locations: {', '.join(added)}")
    else:
        print("✓ All locations already exist")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed the default campus locations")
    parser.add_argument(
        "--backend",
        default=settings.document_store_backend,
        choices=["firestore", "memory"],
        help="Document store backend (default: DOCUMENT_STORE_BACKEND)",
    )
    args = parser.parse_args()

    asyncio.run(init_locations(args.backend))


if __name__ == "__main__":
    main()
