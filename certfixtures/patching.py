"""Byte level corruption of requests and certificates.

Two fixtures are deliberately malformed after openssl has produced them:

* a signing request gets four zero bytes embedded in its subject and is then
  signed again with its own key, so the issued certificate is signature-valid
  while carrying the null bytes.
* a PEM certificate gets five characters of its base64 body overwritten,
  which keeps it parseable but breaks its signature.
"""

import logging
import os
import re
from pathlib import Path

from certfixtures.fileops import create_file, read_tail_trimmed
from certfixtures.paths import PathSpec
from certfixtures.toolkit import Flag, Openssl

logger = logging.getLogger(f"certfixtures.{__name__}")

NULL_MARKER = b"NULL"
NULL_BYTES = b"\x00" * len(NULL_MARKER)
# an RSA 2048 signature, the last element of the DER encoded request
SIGNATURE_LENGTH = 256
# offset of the CertificationRequestInfo inside the outer DER sequence
PAYLOAD_OFFSET = "4"

PEM_CERTIFICATE_FOOTER = b"\n-----END CERTIFICATE-----\n"
CORRUPTION = b"AAAAA"
CORRUPTION_PATTERN = re.compile(
    rb"\A(?P<prefix>.*)(?P<target>.{5})(?P<tail>.{3})" + re.escape(PEM_CERTIFICATE_FOOTER) + rb"\Z",
    re.DOTALL,
)


class PatternNotFoundError(Exception):
    """Raised when the bytes a corruption step has to replace are not there."""

    def __init__(self, step: str, path: object, pattern: bytes) -> None:
        """Keep enough context to tell which step failed on which file."""
        self.step = step
        self.path = path
        self.pattern = pattern
        super().__init__(f"{step}: pattern {pattern!r} not found in {path}")


def replace_null_marker(der: bytes, path: object = "<bytes>") -> bytes:
    """Replace the first ``NULL`` in ``der`` with four zero bytes."""
    offset = der.find(NULL_MARKER)
    if offset == -1:
        raise PatternNotFoundError("Embedding null bytes", path, NULL_MARKER)
    logger.debug(f"Replacing {NULL_MARKER!r} at offset {offset} in {path}")
    return der[:offset] + NULL_BYTES + der[offset + len(NULL_MARKER) :]


def embed_null_bytes(  # noqa: PLR0913
    openssl: Openssl,
    request: PathSpec,
    key: PathSpec,
    der: PathSpec,
    payload: PathSpec,
    signature: PathSpec,
) -> None:
    """Put null bytes into the PEM request at ``request`` and sign it again with ``key``.

    The request is converted to DER, patched, its CertificationRequestInfo is
    extracted and signed with SHA-256, and the new signature replaces the old
    one at the end of the DER data. The result is written back to ``request``
    in PEM format.

    Args:
        openssl: The Openssl instance to use
        request: The PEM request to patch in place
        key: The private key belonging to the request
        der: Where to keep the DER form of the request
        payload: Where to keep the extracted signed payload
        signature: Where to keep the new signature

    Returns:
        None
    """
    logger.info(f"Embedding null bytes in {request}")
    openssl.run(["req", Flag("in"), request, Flag("outform"), "DER", Flag("out"), der])
    with Path(der).open("rb") as f:
        patched = replace_null_marker(f.read(), path=der)
    create_file(der, patched)

    openssl.run(
        [
            "asn1parse",
            Flag("inform"),
            "DER",
            Flag("in"),
            der,
            Flag("strparse"),
            PAYLOAD_OFFSET,
            Flag("noout"),
            Flag("out"),
            payload,
        ]
    )
    openssl.run(["dgst", Flag("sha256"), Flag("sign"), key, Flag("out"), signature, payload])

    with Path(signature).open("rb") as f:
        new_signature = f.read()
    create_file(der, read_tail_trimmed(der, SIGNATURE_LENGTH) + new_signature)
    openssl.run(["req", Flag("inform"), "DER", Flag("in"), der, Flag("out"), request])


def corrupt_pem_body(pem: bytes, path: object = "<bytes>") -> bytes:
    """Overwrite the five base64 characters before the last three of a PEM certificate with ``AAAAA``.

    The last three characters stay in place so the base64 padding is unaffected.
    A body which already has ``AAAAA`` in that position can not be corrupted
    this way and is rejected.
    """
    match = CORRUPTION_PATTERN.match(pem)
    if match is None or match["target"] == CORRUPTION:
        raise PatternNotFoundError("Corrupting certificate body", path, PEM_CERTIFICATE_FOOTER)
    return match["prefix"] + CORRUPTION + match["tail"] + PEM_CERTIFICATE_FOOTER


def corrupt_certificate(path: os.PathLike[str]) -> None:
    """Corrupt the PEM certificate at ``path`` in place."""
    logger.info(f"Corrupting certificate body of {path}")
    with Path(path).open("rb") as f:
        pem = f.read()
    create_file(path, corrupt_pem_body(pem, path=path))
