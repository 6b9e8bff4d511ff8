# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent


'''
Package building the QEMU DXE core binaries with cargo.
'''

from .errors import *  # noqa
from .manifest import *  # noqa
from .overrides import *  # noqa
from .patcher import *  # noqa
from .settings import *  # noqa
from .builder import *  # noqa
from .orchestrator import *  # noqa
