# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""DigitalMarket account server."""

__version__ = "0.3.0"
