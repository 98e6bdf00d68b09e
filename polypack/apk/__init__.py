# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Alpine-style (.apk) package backend.

An .apk file is three gzip members written back to back:

    signature.tar.gz    one .SIGN.RSA.<key>.rsa.pub entry
    control.tar.gz      .PKGINFO plus any lifecycle scriptlets
    data.tar.gz         the staged payload, every file carrying an
                        APK-TOOLS.checksum.SHA1 extended header record

Subsystems:
  - metadata: PackageMetadata record and .PKGINFO / scriptlet rendering
  - datahash: aggregate payload digest written back into .PKGINFO
  - tarball:  tar serialization with per-file checksum records
  - tgz:      gzip framing with 512-byte alignment and a running digest
  - signing:  ephemeral RSA keypair, control digest signature, key export
  - builder:  the sequential build pipeline and final concatenation
  - packer:   the format-contract implementation used by the registry
  - reader:   splits a built package back into members, for inspection
"""
