# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent


###############################################################################
# DXE core build for the QEMU SBSA reference machine


from ..settings import DxeCoreSettingsManager


class SbsaSettingsManager(DxeCoreSettingsManager):
    ''' SettingsManager for the QEMU SBSA (aarch64) DXE core. '''
    ARCH = "aarch64"

    def GetName(self):
        return "sbsa"
