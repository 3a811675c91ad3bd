#!/usr/bin/env python
"""Certfixtures module.

Generates a reproducible tree of X.509 test certificates, CAs and CRLs by
driving the openssl command line tool, for use by TLS test-suites.
"""

import argparse
import logging
import logging.handlers
import os
import re
import shutil
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import cryptography.x509
import yaml
from pid import PidFile  # type: ignore[import-not-found]
from pydantic_settings import BaseSettings, SettingsConfigDict

from certfixtures.ca import CaBuilder, CaDirectory
from certfixtures.fileops import concat_files, purge_matching
from certfixtures.fixtures import (
    CERTIFICATE_SUFFIX,
    DER_SUFFIX,
    FIXTURES,
    KEY_SUFFIX,
    PAYLOAD_SUFFIX,
    REQUEST_SUFFIX,
    SERVICE_FIXTURES,
    SIGNATURE_SUFFIX,
    TAIL_SUFFIX,
    CaKind,
    Fixture,
    Patch,
    Revocation,
)
from certfixtures.patching import PatternNotFoundError, corrupt_certificate, embed_null_bytes
from certfixtures.paths import PathSpec
from certfixtures.toolkit import Flag, Openssl, ToolFailure

logger = logging.getLogger(f"certfixtures.{__name__}")

# get version number from package metadata if possible
__version__: str

try:
    __version__ = version("certfixtures")
except PackageNotFoundError:
    # package is not installed
    __version__ = "0.0.0"

CONFIG_FILE_NAME = "certfixtures.yml"
PEM_CERTIFICATE = re.compile(rb"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----\n?", re.DOTALL)


class ChainError(Exception):
    """Raised when a combined chain file does not hold the expected certificates."""


class Config(BaseSettings):
    """The Certfixtures settings class.

    Defines default settings, supports env overrides.
    """

    model_config = SettingsConfigDict(env_prefix="certfixtures_")

    check_chains: bool = True
    dest: Path = Path("test_certs")
    expected_chain_length: int = 2
    home: Path | None = None
    log_level: str = "INFO"
    openssl_command: str = "openssl"
    openssl_conf: Path | None = None
    purge_pattern: str = "*.old"
    root_ca_name: str = "rootCA"
    source: Path | None = None
    syslog_facility: str | None = None
    syslog_socket: str | None = None


class CertFixtures:
    """Generates the certificate fixture tree."""

    # save version as a class attribute
    __version__ = __version__

    fixtures: tuple[Fixture, ...] = FIXTURES
    service_fixtures: tuple[Fixture, ...] = SERVICE_FIXTURES

    def __init__(
        self,
        userconfig: dict[str, str | bool | Path | None] | None = None,
        openssl: Openssl | None = None,
    ) -> None:
        """Merge userconfig with defaults, configure logging and prepare the toolkit.

        Args:
            userconfig: A dict of configuration to merge with default config
            openssl: The Openssl instance to use. Optional, built from config if not given.

        Returns:
            None
        """
        if userconfig is None:
            userconfig = {}
        # convert dashes to underscores in config keys
        for key in list(userconfig.keys()):
            if "-" in key:
                newkey = key.replace("-", "_")
                userconfig[newkey] = userconfig[key]
                del userconfig[key]
        self.conf = Config(**userconfig)  # type: ignore[arg-type]

        # define the log format used for stdout depending on the requested loglevel
        if self.conf.log_level == "DEBUG":
            console_logformat = (
                "%(asctime)s certfixtures %(levelname)s CertFixtures.%(funcName)s():%(lineno)i:  %(message)s"
            )
        else:
            console_logformat = "%(asctime)s certfixtures %(levelname)s %(message)s"

        # configure the log format used for console
        logging.basicConfig(
            level=getattr(logging, self.conf.log_level),
            format=console_logformat,
            datefmt="%Y-%m-%d %H:%M:%S %z",
        )

        # connect to syslog?
        if self.conf.syslog_socket and self.conf.syslog_facility:
            facility: int = getattr(logging.handlers.SysLogHandler, self.conf.syslog_facility)
            syslog_handler = logging.handlers.SysLogHandler(address=self.conf.syslog_socket, facility=facility)
            syslog_handler.setFormatter(logging.Formatter("certfixtures: %(message)s"))
            logger.addHandler(syslog_handler)
            logger.debug(
                f"Logging to syslog-socket {self.conf.syslog_socket} with facility {self.conf.syslog_facility}"
            )

        logger.info(f"certfixtures {__version__} running, log-level is {self.conf.log_level}")
        logger.debug(f"Running with config: {self.conf}")

        # check if we have a usable source directory
        if not self.conf.source:
            logger.error("No source directory configured. Specify --source or set CERTFIXTURES_SOURCE.")
            sys.exit(1)
        if not self.conf.source.is_dir():
            logger.error(f"Configured source directory {self.conf.source} does not exist")
            sys.exit(1)

        # dest is deleted on every run, so it must not hold the source directory
        source = self.conf.source.resolve()
        dest = self.conf.dest.resolve()
        if dest == source or dest in source.parents:
            logger.error(f"Output directory {dest} contains the source directory {source}, refusing to delete it")
            sys.exit(1)

        # the toolkit runs inside dest, so all paths handed to it are absolute
        self.source = PathSpec(source)
        self.dest = PathSpec(dest)

        if openssl is None:
            openssl = Openssl(
                command=self.conf.openssl_command,
                cwd=Path(self.dest),
                env=self.get_toolkit_env(),
            )
        self.openssl = openssl
        self.ca_builder = CaBuilder(openssl)
        self.root_ca = CaDirectory(
            path=self.dest / self.conf.root_ca_name,
            config=self.source / self.conf.root_ca_name + ".cnf",
        )

    def get_toolkit_env(self) -> dict[str, str]:
        """Return the environment for openssl, with HOME and OPENSSL_CONF set from config."""
        env = os.environ.copy()
        env.update({"HOME": str(self.conf.home or self.dest)})
        if self.conf.openssl_conf:
            env.update({"OPENSSL_CONF": str(self.conf.openssl_conf)})
        return env

    # path helpers

    def output(self, fixture: Fixture, suffix: str) -> PathSpec:
        """Return the path of an output file of ``fixture`` in dest."""
        return self.dest / fixture.name + suffix

    def fixture_ca(self, fixture: Fixture) -> CaDirectory:
        """Return the dedicated CaDirectory of ``fixture``."""
        return CaDirectory(path=self.dest / fixture.ca_name, config=self.source / fixture.ca_config)

    def issuing_ca(self, fixture: Fixture) -> CaDirectory:
        """Return the CaDirectory which signs the certificate of ``fixture``."""
        return self.fixture_ca(fixture) if fixture.ca else self.root_ca

    # pipeline steps

    def prepare_dest(self) -> None:
        """Delete any existing output tree and create an empty dest directory."""
        dest = Path(self.dest)
        if dest.exists():
            logger.debug(f"Removing existing output directory {dest}")
            shutil.rmtree(dest)
        dest.mkdir(parents=True)

    def make_root_ca(self) -> CaDirectory:
        """Create the self-signed root CA."""
        return self.ca_builder.make_ca(self.root_ca)

    def make_fixture_ca(self, fixture: Fixture) -> CaDirectory:
        """Create the dedicated CA of ``fixture``, self-signed or issued by the root CA."""
        return self.ca_builder.make_ca(
            self.fixture_ca(fixture),
            req_options=[Flag(option) for option in fixture.ca_request_options],
            issuer=self.root_ca if fixture.ca is CaKind.INTERMEDIATE else None,
        )

    def issue_certificate(self, fixture: Fixture) -> PathSpec:
        """Create key and CSR for ``fixture`` and sign it using the fixture config.

        Args:
            fixture: The Fixture to issue a certificate for

        Returns:
            The path of the new certificate
        """
        config = self.source / fixture.config
        request = self.output(fixture, REQUEST_SUFFIX)
        certificate = self.output(fixture, fixture.issued_suffix)
        self.ca_builder.make_request(config, self.output(fixture, KEY_SUFFIX), request)
        options = [Flag("policy"), fixture.policy] if fixture.policy else []
        self.ca_builder.sign(config, request, certificate, options=options)
        return certificate

    def make_chain(self, fixture: Fixture, ca: CaDirectory) -> PathSpec:
        """Concatenate the tail certificate of ``fixture`` and the certificate of its CA.

        Args:
            fixture: The Fixture with the tail certificate
            ca: The CaDirectory which issued the tail certificate

        Returns:
            The path of the combined chain file
        """
        chain = self.output(fixture, CERTIFICATE_SUFFIX)
        concat_files([self.output(fixture, TAIL_SUFFIX), ca.certificate], chain)
        if self.conf.check_chains:
            self.parse_certificate_chain(Path(chain), expected_length=self.conf.expected_chain_length)
        return chain

    def embed_null_bytes(self, fixture: Fixture) -> None:
        """Embed null bytes in the request of ``fixture`` and issue its certificate again."""
        request = self.output(fixture, REQUEST_SUFFIX)
        embed_null_bytes(
            self.openssl,
            request=request,
            key=self.output(fixture, KEY_SUFFIX),
            der=self.output(fixture, DER_SUFFIX),
            payload=self.output(fixture, PAYLOAD_SUFFIX),
            signature=self.output(fixture, SIGNATURE_SUFFIX),
        )
        self.ca_builder.sign(self.source / fixture.config, request, self.output(fixture, CERTIFICATE_SUFFIX))

    def revoke(self, fixture: Fixture) -> None:
        """Revoke the CA certificate or the issued certificate of ``fixture``."""
        if fixture.revoke is Revocation.CA:
            self.ca_builder.revoke(self.root_ca, self.fixture_ca(fixture).certificate)
        else:
            self.ca_builder.revoke(self.issuing_ca(fixture), self.output(fixture, fixture.issued_suffix))

    def make_fixture(self, fixture: Fixture) -> None:
        """Run all steps for a single fixture, in order.

        Create the dedicated CA (if any), issue the certificate, build the chain
        file, run the corruption step and finally the revocation.

        Args:
            fixture: The Fixture to generate

        Returns:
            None
        """
        logger.info(f"Generating certificate fixture {fixture.name}")
        ca = self.make_fixture_ca(fixture) if fixture.ca else self.root_ca
        self.issue_certificate(fixture)
        if fixture.chain:
            self.make_chain(fixture, ca)
        if fixture.patch is Patch.NULL_BYTES:
            self.embed_null_bytes(fixture)
        elif fixture.patch is Patch.CORRUPT_BODY:
            corrupt_certificate(self.output(fixture, CERTIFICATE_SUFFIX))
        if fixture.revoke:
            self.revoke(fixture)

    def generate_crls(self) -> list[PathSpec]:
        """Generate the CRL of the root CA and of every fixture CA which wants one."""
        crls = [self.ca_builder.generate_crl(self.root_ca)]
        for fixture in self.fixtures:
            if fixture.crl:
                crls.append(self.ca_builder.generate_crl(self.fixture_ca(fixture)))
        return crls

    def run(self) -> None:
        """Generate the whole fixture tree.

        Every step runs after the previous one has succeeded. Revocations happen
        as part of the fixtures, so the CRLs are generated after all of them.

        Returns:
            None
        """
        logger.info(f"Generating certificate fixtures in {self.dest} using configs from {self.source}")
        self.prepare_dest()
        self.make_root_ca()
        for fixture in self.fixtures:
            self.make_fixture(fixture)
        self.generate_crls()
        for fixture in self.service_fixtures:
            self.make_fixture(fixture)
        removed = purge_matching(self.dest, self.conf.purge_pattern)
        count = len(self.fixtures) + len(self.service_fixtures)
        logger.info(f"Generated {count} fixtures, removed {len(removed)} stale files")

    # utility methods

    @staticmethod
    def split_pem_chain(pem_chain_bytes: bytes) -> list[bytes]:
        """Split a PEM chain into a list of bytes of the individual PEM certificates.

        Text around the PEM blocks (like the dump ``openssl ca`` writes) is ignored.

        Args:
            pem_chain_bytes: The bytes representing the PEM chain

        Returns:
            A list of 0 or more bytes chunks representing each certificate
        """
        logger.debug(f"Parsing certificates from {len(pem_chain_bytes)} bytes input")
        certificates: list[bytes] = PEM_CERTIFICATE.findall(pem_chain_bytes)
        logger.debug(f"Returning a list of {len(certificates)} chunks of bytes resembling PEM certificates")
        return certificates

    @classmethod
    def parse_certificate_chain(
        cls,
        certpath: Path,
        expected_length: int | None = None,
    ) -> list[cryptography.x509.Certificate]:
        """Parse the certificate chain in ``certpath``.

        Args:
            certpath(Path): The path of the certificate chain to parse
            expected_length(int | None): The number of certificates to expect. Optional.

        Returns:
            A list of cryptography.x509.Certificate objects in the order they appear
            in the input.

        Raises:
            ChainError: If the number of certificates is wrong or a certificate can not be parsed
        """
        logger.debug(f"Reading PEM cert chain from file {certpath} ...")
        with certpath.open("rb") as f:
            chainbytes = f.read()

        certs = cls.split_pem_chain(chainbytes)
        if expected_length and len(certs) != expected_length:
            raise ChainError(
                f"The file {certpath} has {len(certs)} certificates, expected a chain with {expected_length} "
                "certificates, something is not right."
            )

        chain = []
        for certbytes in certs:
            try:
                chain.append(cryptography.x509.load_pem_x509_certificate(certbytes))
            except ValueError as e:
                raise ChainError(f"Parsing certificate from {certpath} failed") from e
        return chain


def get_parser() -> argparse.ArgumentParser:
    """Create and return the argparse object."""
    parser = argparse.ArgumentParser(
        description=f"certfixtures version {__version__}. Generates X.509 test certificates, CAs and CRLs "
        "using the openssl command line tool."
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_const",
        dest="log-level",
        const="DEBUG",
        help="Debug mode. Equal to setting log-level DEBUG.",
        default=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--dest",
        dest="dest",
        help="The directory to generate the certificates in. It is deleted and recreated on every run.",
        default=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--source",
        dest="source",
        required=True,
        help=f"The directory with the openssl config files, and optionally a {CONFIG_FILE_NAME} config file.",
    )
    return parser


def parse_args(
    mockargs: list[str] | None = None,
) -> tuple[argparse.ArgumentParser, argparse.Namespace]:
    """Parse and return command-line args."""
    parser = get_parser()
    args = parser.parse_args(mockargs if mockargs else sys.argv[1:])
    return parser, args


def main(mockargs: list[str] | None = None) -> None:
    """Read config from file and command-line args, then generate the fixtures.

    The config file ``certfixtures.yml`` is read from the source directory if it
    exists, command-line arguments override its settings.

    Args:
        mockargs: A list of args to use instead of command-line arguments. Optional.

    Returns:
        None
    """
    # get commandline arguments
    parser, args = parse_args(mockargs)

    # read and parse the config file
    configfile = Path(args.source) / CONFIG_FILE_NAME
    if configfile.exists():
        with configfile.open() as f:
            try:
                config = yaml.load(f, Loader=yaml.SafeLoader) or {}
            except yaml.YAMLError:
                logger.exception(f"Unable to parse YAML config file {configfile} - bailing out.")
                sys.exit(1)
    else:
        # we have no config file
        config = {}

    # command line arguments override config file settings
    config.update(vars(args))

    certfixtures = CertFixtures(userconfig=config)
    try:
        certfixtures.run()
    except ToolFailure as e:
        logger.error(str(e))  # noqa: TRY400
        logger.error("openssl stderr:")  # noqa: TRY400
        for line in e.stderr_lines:
            logger.error(line)  # noqa: TRY400
        sys.exit(1)
    except (PatternNotFoundError, ChainError) as e:
        logger.error(str(e))  # noqa: TRY400
        sys.exit(1)

    # we are done here
    logger.info("All done, certfixtures exiting cleanly.")


if __name__ == "__main__":
    with PidFile("certfixtures"):
        main()
