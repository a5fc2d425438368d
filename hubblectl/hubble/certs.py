"""Certificate authority management for Hubble TLS.

The CA is looked up in the ``hubble-ca`` secret first, then in the values
tree, and generated only when neither holds it and creation is allowed. Relay
server and client certificates are issued from the CA on every call.
"""

from __future__ import annotations

import base64
import binascii
import datetime
from dataclasses import dataclass, field
from typing import Any

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController, KubernetesError

from .errors import CertificateError
from .parameters import Parameters
from .values import ResolvedValues

RELAY_SERVER_NAME = "*.hubble-relay.cilium.io"
RELAY_CLIENT_NAME = "*.hubble-relay.cilium.io"

CA_CERT_PATH = "hubble.tls.ca.cert"
CA_KEY_PATH = "hubble.tls.ca.key"


@dataclass(frozen=True)
class KeyPair:
    """PEM certificate and private key."""

    cert_pem: str = field(repr=False)
    key_pem: str = field(repr=False)

    @property
    def certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.cert_pem.encode())


@dataclass(frozen=True)
class CAState:
    """CA material plus the relay leaf pairs issued from it."""

    ca: KeyPair
    relay_server: KeyPair
    relay_client: KeyPair

    def __repr__(self) -> str:
        subject = self.ca.certificate.subject.rfc4514_string()
        return f"CAState(ca={subject!r}, relay_server=<issued>, relay_client=<issued>)"

    def fold_into(self, values: ResolvedValues) -> ResolvedValues:
        """Return ``values`` with all TLS material written at its value paths."""
        return values.merged(
            {
                "hubble": {
                    "tls": {
                        "ca": {
                            "cert": _b64(self.ca.cert_pem),
                            "key": _b64(self.ca.key_pem),
                        }
                    },
                    "relay": {
                        "tls": {
                            "server": {
                                "cert": _b64(self.relay_server.cert_pem),
                                "key": _b64(self.relay_server.key_pem),
                            },
                            "client": {
                                "cert": _b64(self.relay_client.cert_pem),
                                "key": _b64(self.relay_client.key_pem),
                            },
                        }
                    },
                }
            }
        )


def _b64(pem: str) -> str:
    return base64.b64encode(pem.encode()).decode()


def _key_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def _cert_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode()


def _key_usage(*, ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=not ca,
        content_commitment=False,
        key_encipherment=not ca,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def generate_ca(constants: HubbleConstants = DEFAULT_CONSTANTS) -> KeyPair:
    """Generate a self-signed RSA CA."""
    now = datetime.datetime.now(datetime.timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=constants.KEY_SIZE)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, constants.CA_COMMON_NAME)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=constants.CA_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(_key_usage(ca=True), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    return KeyPair(cert_pem=_cert_pem(cert), key_pem=_key_pem(key))


def load_ca(cert_pem: str, key_pem: str) -> tuple[x509.Certificate, rsa.RSAPrivateKey]:
    """Parse CA material and check the key belongs to the certificate.

    Raises:
        CertificateError: If either half is unparsable or they do not match
    """
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode())
        key = serialization.load_pem_private_key(key_pem.encode(), password=None)
    except (ValueError, TypeError) as e:
        raise CertificateError(
            "Unable to parse CA material",
            details="The CA certificate or key is not valid PEM.",
        ) from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateError("Unsupported CA key type", details="Only RSA CA keys are supported.")
    if cert.public_key().public_numbers() != key.public_key().public_numbers():
        raise CertificateError(
            "CA key does not match certificate",
            details="Delete the hubble-ca secret or pass matching values.",
        )
    return cert, key


def issue_certificate(
    ca_cert: x509.Certificate,
    ca_key: rsa.RSAPrivateKey,
    common_name: str,
    dns_names: list[str],
    *,
    server: bool,
    validity_days: int = DEFAULT_CONSTANTS.LEAF_VALIDITY_DAYS,
    key_size: int = DEFAULT_CONSTANTS.KEY_SIZE,
) -> KeyPair:
    """Issue a leaf certificate signed by the CA."""
    now = datetime.datetime.now(datetime.timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    usage = ExtendedKeyUsageOID.SERVER_AUTH if server else ExtendedKeyUsageOID.CLIENT_AUTH
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(ca=False), critical=True)
        .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return KeyPair(cert_pem=_cert_pem(cert), key_pem=_key_pem(key))


def is_issued_by(cert_pem: str, ca_cert_pem: str) -> bool:
    """Whether ``cert_pem`` carries a valid signature from the CA."""
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode())
        ca = x509.load_pem_x509_certificate(ca_cert_pem.encode())
        public_key = ca.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey) or cert.signature_hash_algorithm is None:
            return False
        public_key.verify(
            cert.signature,
            cert.tbs_certificate_bytes,
            padding.PKCS1v15(),
            cert.signature_hash_algorithm,
        )
    except (ValueError, InvalidSignature):
        return False
    return cert.issuer == ca.subject


def _decode_b64(value: Any, path: str) -> str:
    try:
        return base64.b64decode(str(value), validate=True).decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise CertificateError(
            "Unable to parse CA material", details=f"{path} is not base64-encoded PEM."
        ) from e


class CertificateAuthorityManager:
    """Finds, generates and persists the Hubble CA."""

    def __init__(
        self,
        controller: KubernetesController,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self.controller = controller
        self.constants = constants

    async def _load_from_secret(self, namespace: str) -> KeyPair | None:
        try:
            data = await self.controller.get_secret_data(
                self.constants.CA_SECRET_NAME, namespace
            )
        except KubernetesError as e:
            raise CertificateError(
                f"Unable to read secret {self.constants.CA_SECRET_NAME}", details=str(e)
            ) from e
        if not data or not data.get("ca.crt") or not data.get("ca.key"):
            return None
        logger.debug(f"Using CA from secret {namespace}/{self.constants.CA_SECRET_NAME}")
        return KeyPair(cert_pem=data["ca.crt"], key_pem=data["ca.key"])

    def _load_from_values(self, values: ResolvedValues) -> KeyPair | None:
        cert = values.get(CA_CERT_PATH)
        key = values.get(CA_KEY_PATH)
        if not cert or not key:
            return None
        logger.debug("Using CA from values")
        return KeyPair(
            cert_pem=_decode_b64(cert, CA_CERT_PATH),
            key_pem=_decode_b64(key, CA_KEY_PATH),
        )

    async def _write_secret(self, namespace: str, ca: KeyPair) -> None:
        try:
            await self.controller.replace_secret(
                self.constants.CA_SECRET_NAME,
                namespace,
                {"ca.crt": ca.cert_pem, "ca.key": ca.key_pem},
                labels=self.constants.managed_labels,
            )
        except KubernetesError as e:
            raise CertificateError(
                f"Unable to write secret {self.constants.CA_SECRET_NAME}", details=str(e)
            ) from e

    async def ensure(self, params: Parameters, values: ResolvedValues) -> CAState:
        """Return the CA for ``params.namespace``, creating it if allowed.

        Args:
            params: Invocation parameters (namespace, create_ca)
            values: Resolved values, searched for CA material after the secret

        Returns:
            CAState with freshly issued relay server and client pairs

        Raises:
            CertificateError: If no CA exists and create_ca is false, or the
                existing material cannot be parsed
        """
        namespace = params.namespace or self.constants.DEFAULT_NAMESPACE
        ca = await self._load_from_secret(namespace) or self._load_from_values(values)

        if ca is None:
            if not params.create_ca:
                raise CertificateError(
                    "Unable to find CA",
                    details=(
                        f"No {self.constants.CA_SECRET_NAME} secret in namespace "
                        f"{namespace} and no CA in values. Re-run with --create-ca."
                    ),
                )
            logger.info(f"Generating CA in namespace {namespace}")
            ca = generate_ca(self.constants)
            await self._write_secret(namespace, ca)

        ca_cert, ca_key = load_ca(ca.cert_pem, ca.key_pem)
        return CAState(
            ca=ca,
            relay_server=issue_certificate(
                ca_cert,
                ca_key,
                RELAY_SERVER_NAME,
                [
                    RELAY_SERVER_NAME,
                    self.constants.RELAY_NAME,
                    f"{self.constants.RELAY_NAME}.{namespace}.svc",
                ],
                server=True,
                validity_days=self.constants.LEAF_VALIDITY_DAYS,
                key_size=self.constants.KEY_SIZE,
            ),
            relay_client=issue_certificate(
                ca_cert,
                ca_key,
                RELAY_CLIENT_NAME,
                [RELAY_CLIENT_NAME],
                server=False,
                validity_days=self.constants.LEAF_VALIDITY_DAYS,
                key_size=self.constants.KEY_SIZE,
            ),
        )

    async def delete(self, namespace: str) -> bool:
        """Delete the CA secret; returns False if it was already absent."""
        try:
            return await self.controller.delete_object(
                "Secret", self.constants.CA_SECRET_NAME, namespace
            )
        except KubernetesError as e:
            raise CertificateError(
                f"Unable to delete secret {self.constants.CA_SECRET_NAME}", details=str(e)
            ) from e
