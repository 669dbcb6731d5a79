# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Run the API server. Run: python -m digitalmarket_server"""

import logging

import uvicorn

from digitalmarket_server.config import settings


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("digitalmarket_server.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
