# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent


'''
Settings managers for the supported QEMU platforms.
'''

from ..settings import PROFILES, TargetDescriptor
from .q35 import Q35SettingsManager
from .sbsa import SbsaSettingsManager


__all__ = [
    "PLATFORMS",
    "Q35SettingsManager",
    "SbsaSettingsManager",
    "get_settings_manager",
    "make_target",
]


PLATFORMS = {
    "q35": Q35SettingsManager,
    "sbsa": SbsaSettingsManager,
}


def get_settings_manager(platform):
    try:
        return PLATFORMS[platform.lower()]
    except KeyError:
        raise ValueError(f"Unknown platform '{platform}', expected one of "
                         + ", ".join(sorted(PLATFORMS))) from None


def make_target(platform, profile):
    ''' Build the TargetDescriptor for `platform` and `profile`.

        The architecture is looked up from the platform, never passed in.
    '''
    settings_class = get_settings_manager(platform)
    if profile not in PROFILES:
        raise ValueError(f"Unknown profile '{profile}', expected one of "
                         + ", ".join(PROFILES))
    return TargetDescriptor(platform.lower(),
                            settings_class.ARCH, profile)
