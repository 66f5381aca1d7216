#!/usr/bin/env python3
"""
Backfill certificates for COMPLETED training records that have none
(for example after a renderer outage). Issuance time and expiry are
taken from each record's completion instant.
Run: python scripts/regenerate_certificates.py
"""

import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ctms.database import async_session_maker
from ctms.services.container import build_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def main():
    services = build_services(async_session_maker)
    async with async_session_maker() as session:
        issued = await services.certificates.backfill_missing(session)
    for issue in issued:
        print(f"{issue.certificate_id} -> {issue.certificate_url}")
    print(f"Issued {len(issued)} certificate(s).")


if __name__ == "__main__":
    asyncio.run(main())
