# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""construct - Run AI coding agents in reusable container sandboxes."""

__version__ = "0.4.1"
