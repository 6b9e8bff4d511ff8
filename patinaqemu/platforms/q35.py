# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent


###############################################################################
# DXE core build for the QEMU Q35 machine


from ..settings import DxeCoreSettingsManager


class Q35SettingsManager(DxeCoreSettingsManager):
    ''' SettingsManager for the QEMU Q35 (x64) DXE core. '''
    ARCH = "x64"

    def GetName(self):
        return "q35"
