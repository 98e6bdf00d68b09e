# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
polypack: multi-distribution package builder.

Turns a staged installation tree plus a package metadata record into an
installable package. The Alpine-style backend (`polypack.apk`) assembles the
signed archive in-process instead of shelling out to abuild.
"""

__version__ = "0.4.0"
