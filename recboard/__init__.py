# SPDX-License-Identifier: Apache-2.0
"""Research ethics committee protocol review engine."""

__version__ = "0.1.0"
