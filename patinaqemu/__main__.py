# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

from .cli import build

if __name__ == '__main__':
    build()
