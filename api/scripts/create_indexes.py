#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes used by the case store.

Run from the api/ directory: python -m scripts.create_indexes
"""

import sys
import logging

from services.errors import InternalError
from services.mongodb import MongoCaseStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main() -> int:
    store = MongoCaseStore()
    try:
        health = store.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            return 1

        logger.info(f"Connected to MongoDB database {health['database']}")
        store.create_indexes()
        return 0
    except InternalError as e:
        logger.error(f"Failed to create indexes: {e.message}")
        return 1
    finally:
        store.close_connection()


if __name__ == "__main__":
    sys.exit(main())
