"""The catalogue of generated certificate fixtures.

Each ``Fixture`` describes one numbered test certificate: whether it gets a
dedicated CA, whether the issued certificate is combined with that CA into a
chain file, which corruption step runs afterwards and what gets revoked.
The openssl configs live in the source directory as ``<name>.cnf`` for the
certificate and ``<name>_CA.cnf`` for a dedicated CA.
"""

import enum
from dataclasses import dataclass

KEY_SUFFIX = "-key.pem"
REQUEST_SUFFIX = ".csr"
CERTIFICATE_SUFFIX = "-cert.pem"
TAIL_SUFFIX = "-tail-cert.pem"
DER_SUFFIX = ".der"
PAYLOAD_SUFFIX = ".tbs"
SIGNATURE_SUFFIX = ".sig"
CONFIG_SUFFIX = ".cnf"
CA_SUFFIX = "_CA"


class CaKind(enum.Enum):
    """How the dedicated CA of a fixture is signed."""

    SELF_SIGNED = "self-signed"
    INTERMEDIATE = "intermediate"


class Patch(enum.Enum):
    """Corruption step run on a fixture after it has been issued."""

    NULL_BYTES = "null-bytes"
    CORRUPT_BODY = "corrupt-body"


class Revocation(enum.Enum):
    """What gets revoked once a fixture exists."""

    # the issued certificate, in the database of the CA which issued it
    CERTIFICATE = "certificate"
    # the dedicated CA certificate, in the database of the root CA
    CA = "ca"


@dataclass(frozen=True)
class Fixture:
    """One generated certificate fixture."""

    name: str
    ca: CaKind | None = None
    ca_request_options: tuple[str, ...] = ()
    chain: bool = False
    patch: Patch | None = None
    revoke: Revocation | None = None
    crl: bool = False
    policy: str | None = None

    def __post_init__(self) -> None:
        """Reject combinations which need a dedicated CA without having one."""
        if self.ca is None and (self.chain or self.crl or self.ca_request_options):
            raise ValueError(f"Fixture {self.name} needs a dedicated CA for chain, CRL or CA request options")
        if self.revoke is Revocation.CA and self.ca is not CaKind.INTERMEDIATE:
            raise ValueError(f"Fixture {self.name} can only revoke a CA issued by the root CA")

    @property
    def config(self) -> str:
        return self.name + CONFIG_SUFFIX

    @property
    def ca_name(self) -> str:
        return self.name + CA_SUFFIX

    @property
    def ca_config(self) -> str:
        return self.ca_name + CONFIG_SUFFIX

    @property
    def issued_suffix(self) -> str:
        """The suffix of the certificate file written by the signing step."""
        return TAIL_SUFFIX if self.chain else CERTIFICATE_SUFFIX


FIXTURES: tuple[Fixture, ...] = (
    *(Fixture(str(number)) for number in range(1, 11)),
    Fixture("11", patch=Patch.NULL_BYTES),
    Fixture("12"),
    Fixture("13"),
    Fixture("15", patch=Patch.CORRUPT_BODY),
    Fixture("16"),
    Fixture("17"),
    Fixture("14", ca=CaKind.SELF_SIGNED, ca_request_options=("nodes",)),
    *(Fixture(str(number), ca=CaKind.INTERMEDIATE, chain=True) for number in range(18, 23)),
    Fixture("23"),
    Fixture("24", revoke=Revocation.CERTIFICATE),
    Fixture("25", ca=CaKind.INTERMEDIATE, chain=True, crl=True),
    Fixture("26", ca=CaKind.INTERMEDIATE, chain=True, crl=True, revoke=Revocation.CERTIFICATE),
    Fixture("27", ca=CaKind.INTERMEDIATE, chain=True, crl=True, revoke=Revocation.CA),
)

# issued by the root CA once all CRLs exist, accepting any subject fields
SERVICE_FIXTURES: tuple[Fixture, ...] = (
    Fixture("server", policy="policy_anything"),
    Fixture("client", policy="policy_anything"),
)
