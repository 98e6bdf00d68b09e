# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Process exit codes of the polypack CLI. Scripts driving polypack (CI jobs,
the multi-package orchestrator) branch on these, so values never change.
"""

SUCCESS: int = 0

# No subcommand given.
USER_ERROR: int = 1

# Config or package metadata file missing, unparsable, or failing its schema;
# staging directory missing.
CONFIG_ERROR: int = 2

# A build phase failed, the package manager failed, or a file was unreadable.
RUNTIME_ERROR: int = 3

# `inspect` was pointed at a file that is not a sequence of gzip'd tar members.
VALIDATION_ERROR: int = 4
