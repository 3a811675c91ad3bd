"""Certificate authority directories operated with ``openssl ca``."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from certfixtures.fileops import create_file, touch
from certfixtures.paths import PathSpec
from certfixtures.toolkit import Argument, Flag, Openssl

logger = logging.getLogger(f"certfixtures.{__name__}")

CA_SUBDIRECTORIES = ("certs", "crl", "newcerts", "private")
CRLNUMBER_SEED = b"01\n"
SERIAL_SEED = b"1000\n"
# extension section in the openssl config marking a certificate as a CA
CA_EXTENSIONS = "v3_ca"


@dataclass(frozen=True)
class CaDirectory:
    """A CA rooted at ``path``, operated through the ``[ca]`` section of ``config``.

    The layout matches the ``CA_default`` section of a stock openssl.cnf, so
    the config is expected to point its ``dir`` at ``path``.
    """

    path: PathSpec
    config: PathSpec

    @property
    def index(self) -> PathSpec:
        return self.path / "index.txt"

    @property
    def crlnumber(self) -> PathSpec:
        return self.path / "crlnumber"

    @property
    def serial(self) -> PathSpec:
        return self.path / "serial"

    @property
    def key(self) -> PathSpec:
        return self.path / "private" / "cakey.pem"

    @property
    def request(self) -> PathSpec:
        return self.path / "careq.pem"

    @property
    def certificate(self) -> PathSpec:
        return self.path / "cacert.pem"

    @property
    def crl(self) -> PathSpec:
        return self.path / "crl" / "crl.pem"


class CaBuilder:
    """Creates certificate authorities and runs the ``openssl ca`` operations against them."""

    def __init__(self, openssl: Openssl) -> None:
        """Use the given Openssl instance for all toolkit invocations."""
        self.openssl = openssl

    @staticmethod
    def make_skeleton(ca: CaDirectory) -> None:
        """Create the subdirectories and the index, crlnumber and serial files of a CA.

        Existing directories are reused, the seed files are always rewritten.

        Args:
            ca: The CaDirectory to initialise

        Returns:
            None
        """
        for name in CA_SUBDIRECTORIES:
            Path(ca.path / name).mkdir(parents=True, exist_ok=True)
        touch(ca.index)
        create_file(ca.crlnumber, CRLNUMBER_SEED)
        create_file(ca.serial, SERIAL_SEED)
        logger.debug(f"Created CA skeleton in {ca.path}")

    def make_request(
        self,
        config: PathSpec,
        key: PathSpec,
        request: PathSpec,
        options: Sequence[Argument] = (),
    ) -> None:
        """Create a new private key and a certificate signing request for it."""
        self.openssl.run(
            [
                "req",
                Flag("new"),
                Flag("config"),
                config,
                Flag("keyout"),
                key,
                Flag("out"),
                request,
                *options,
            ]
        )

    def make_ca(
        self,
        ca: CaDirectory,
        req_options: Sequence[Argument] = (),
        sign_options: Sequence[Argument] = (),
        issuer: CaDirectory | None = None,
    ) -> CaDirectory:
        """Create a fully operable CA in ``ca.path``.

        The CA request is made with the config of the new CA. Without an issuer
        the request is signed by its own key, otherwise it is signed through the
        config of the issuing CA. Either way the certificate gets the
        ``v3_ca`` extensions and a fresh serial number.

        Args:
            ca: The CaDirectory to create
            req_options: Extra arguments for ``openssl req``, like ``Flag("nodes")``
            sign_options: Extra arguments for ``openssl ca``
            issuer: The CaDirectory signing the new CA, or None for a self-signed CA

        Returns:
            The CaDirectory, ready to issue and revoke certificates
        """
        logger.info(f"Creating CA {ca.path} ({'self-signed' if issuer is None else f'issued by {issuer.path}'})")
        self.make_skeleton(ca)
        self.make_request(ca.config, ca.key, ca.request, options=req_options)
        if issuer is None:
            signer = ca
            sign_options = [Flag("selfsign"), Flag("keyfile"), ca.key, *sign_options]
        else:
            signer = issuer
        self.openssl.run(
            [
                "ca",
                Flag("config"),
                signer.config,
                Flag("batch"),
                Flag("create_serial"),
                Flag("extensions"),
                CA_EXTENSIONS,
                Flag("out"),
                ca.certificate,
                *sign_options,
                Flag("infiles"),
                ca.request,
            ]
        )
        return ca

    def sign(
        self,
        config: PathSpec,
        request: PathSpec,
        certificate: PathSpec,
        options: Sequence[Argument] = (),
    ) -> None:
        """Sign ``request`` into ``certificate`` with the CA the ``[ca]`` section of ``config`` points to."""
        self.openssl.run(
            [
                "ca",
                Flag("config"),
                config,
                Flag("batch"),
                Flag("out"),
                certificate,
                *options,
                Flag("infiles"),
                request,
            ]
        )

    def revoke(self, ca: CaDirectory, certificate: PathSpec) -> None:
        """Mark ``certificate`` as revoked in the database of ``ca``."""
        logger.info(f"Revoking {certificate} in CA {ca.path}")
        self.openssl.run(["ca", Flag("config"), ca.config, Flag("revoke"), certificate])

    def generate_crl(self, ca: CaDirectory) -> PathSpec:
        """Write the current CRL of ``ca`` and return its path."""
        logger.info(f"Generating CRL for CA {ca.path}")
        self.openssl.run(["ca", Flag("config"), ca.config, Flag("gencrl"), Flag("out"), ca.crl])
        return ca.crl
