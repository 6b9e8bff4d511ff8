# Copyright (c) Microsoft Corporation.
#
# SPDX-License-Identifier: BSD-2-Clause-Patent

'''
Command line entry points.

One command per platform and profile, e.g.

    patinaqemu-q35-debug [LOCAL_PATH ...]

Each LOCAL_PATH is a local crate checkout used in place of the published
crate of the same name for this build only.
'''

import argparse
import logging
import os
import sys

from edk2toolext import edk2_logging

from .errors import PatinaBuildError, RestorationError
from .orchestrator import BuildOrchestrator
from .platforms import PLATFORMS
from .settings import PROFILES


def parse_command_line_args(argv=None, platform=None, profile=None):
    parser = argparse.ArgumentParser(
        description="Build the QEMU DXE core, optionally against local "
                    "copies of its dependencies.")
    if platform is None:
        parser.add_argument("platform", choices=sorted(PLATFORMS),
                            help="Platform to build")
    if profile is None:
        parser.add_argument("--target", dest="profile", choices=PROFILES,
                            default="debug", help="Build profile")
    parser.add_argument(
        "local_paths", metavar="LOCAL_PATH", nargs="*",
        help="Local crate to use instead of the published one.  May be "
             "given more than once.")
    parser.add_argument(
        "--workspace", default=os.getenv("WORKSPACE") or os.getcwd(),
        help="Directory holding Cargo.toml.  Defaults to $WORKSPACE, or "
             "the current directory.")
    parser.add_argument(
        "-n", "--jobs", dest="jobs", type=int,
        help="Number of concurrent build jobs to run")
    parser.add_argument(
        "--enable-debugger", action="store_true",
        help="Build with the debugger enabled at boot")
    parser.add_argument(
        "--build-debugger", action="store_true",
        help="Build the debugger in, without enabling it")
    parser.add_argument(
        "--timings", action="store_true",
        help="Have cargo write an HTML timing report")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging")

    args = parser.parse_args(argv)
    if platform is not None:
        args.platform = platform
    if profile is not None:
        args.profile = profile
    return args


def main(argv=None, platform=None, profile=None):
    args = parse_command_line_args(argv, platform, profile)
    edk2_logging.setup_console_logging(
        logging.DEBUG if args.verbose else logging.INFO)

    features = []
    if args.enable_debugger:
        features.append("enable_debugger")
    if args.build_debugger:
        features.append("build_debugger")

    orchestrator = BuildOrchestrator(
        args.platform, args.profile, args.workspace, dict(os.environ),
        jobs=args.jobs, features=features, timings=args.timings)

    try:
        result = orchestrator.Run(args.local_paths)
    except RestorationError as e:
        logging.critical("%s failed: %s", e.stage, e)
        if e.original_error is not None:
            stage = getattr(e.original_error, "stage", "build")
            logging.critical("%s failed before the restore: %s", stage,
                             e.original_error)
        logging.critical("Check the manifest and lock file by hand before "
                         "building again.")
        return e.exit_code
    except PatinaBuildError as e:
        logging.error("%s failed: %s", e.stage, e)
        result = getattr(e, "result", None)
        if result is not None and result.log_excerpt:
            logging.error("Last toolchain output:\n%s", result.log_excerpt)
        return e.exit_code
    except OSError as e:
        logging.error("%s failed: %s", orchestrator.failed_stage or "build", e)
        return 1

    print(result.artifact_path)
    return 0


def build():
    sys.exit(main())


def q35_debug():
    sys.exit(main(platform="q35", profile="debug"))


def q35_release():
    sys.exit(main(platform="q35", profile="release"))


def sbsa_debug():
    sys.exit(main(platform="sbsa", profile="debug"))


def sbsa_release():
    sys.exit(main(platform="sbsa", profile="release"))
