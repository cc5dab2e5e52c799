"""Client application certificates for secured OPC UA endpoints.

Servers that only offer Sign or SignAndEncrypt endpoints require the
gateway to present an application instance certificate. The gateway
generates a self-signed one on first use and reuses it until it expires.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

logger = structlog.get_logger(__name__)

DEFAULT_VALIDITY_DAYS = 365
DEFAULT_KEY_SIZE = 2048

# OPC UA Part 6, 6.2.2: application instance certificates sign and encrypt
_APPLICATION_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=True,
    key_encipherment=True,
    data_encipherment=True,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)


@dataclass(frozen=True)
class CertificateRequest:
    """What goes into a self-signed application certificate."""

    common_name: str
    organization: str = "UA Web Gateway"
    application_uri: str | None = None
    validity_days: int = DEFAULT_VALIDITY_DAYS
    for_server: bool = False
    for_client: bool = True

    def subject(self) -> x509.Name:
        return x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
            x509.NameAttribute(NameOID.COMMON_NAME, self.common_name),
        ])

    def alternative_names(self) -> x509.SubjectAlternativeName:
        names: list[x509.GeneralName] = [x509.DNSName(socket.gethostname())]
        if self.application_uri:
            names.append(x509.UniformResourceIdentifier(self.application_uri))
        return x509.SubjectAlternativeName(names)

    def extended_usages(self) -> list[x509.ObjectIdentifier]:
        usages: list[x509.ObjectIdentifier] = []
        if self.for_server:
            usages.append(ExtendedKeyUsageOID.SERVER_AUTH)
        if self.for_client:
            usages.append(ExtendedKeyUsageOID.CLIENT_AUTH)
        return usages


def build_certificate(
    request: CertificateRequest,
    private_key: rsa.RSAPrivateKey,
) -> x509.Certificate:
    """Sign a certificate for ``request`` with its own key."""
    public_key = private_key.public_key()
    issued = datetime.now(UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(request.subject())
        .issuer_name(request.subject())
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(issued)
        .not_valid_after(issued + timedelta(days=request.validity_days))
        .add_extension(request.alternative_names(), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_APPLICATION_KEY_USAGE, critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
    )
    usages = request.extended_usages()
    if usages:
        builder = builder.add_extension(x509.ExtendedKeyUsage(usages), critical=False)
    return builder.sign(private_key, hashes.SHA256())


def _read_certificate(cert_path: Path) -> x509.Certificate:
    data = cert_path.read_bytes()
    # DER is the OPC UA default; PEM is accepted for hand-provisioned files
    try:
        return x509.load_der_x509_certificate(data)
    except ValueError:
        return x509.load_pem_x509_certificate(data)


class CertificateManager:
    """Generates and loads the gateway's client certificate.

    The certificate carries the application URI as a subject alternative
    name, which servers check against the session's ApplicationDescription.
    """

    def __init__(self, cert_dir: Path | None = None) -> None:
        self._cert_dir = cert_dir or Path.cwd()

    async def generate_self_signed(
        self,
        common_name: str,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        *,
        organization: str = "UA Web Gateway",
        application_uri: str | None = None,
        for_server: bool = False,
        for_client: bool = True,
    ) -> tuple[Path, Path]:
        """Write ``<common_name>.der`` and ``<common_name>.pem`` to the cert dir.

        Returns:
            Tuple of (certificate_path, key_path).
        """
        request = CertificateRequest(
            common_name=common_name,
            organization=organization,
            application_uri=application_uri,
            validity_days=validity_days,
            for_server=for_server,
            for_client=for_client,
        )
        logger.info(
            "Generating self-signed certificate",
            common_name=common_name,
            application_uri=application_uri,
            validity_days=validity_days,
        )

        private_key = rsa.generate_private_key(public_exponent=65537, key_size=DEFAULT_KEY_SIZE)
        certificate = build_certificate(request, private_key)
        return self._write(common_name, certificate, private_key)

    def _write(
        self,
        stem: str,
        certificate: x509.Certificate,
        private_key: rsa.RSAPrivateKey,
    ) -> tuple[Path, Path]:
        self._cert_dir.mkdir(parents=True, exist_ok=True)
        cert_path = self._cert_dir / f"{stem}.der"
        key_path = self._cert_dir / f"{stem}.pem"

        cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.DER))
        key_path.write_bytes(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
        logger.info("Certificate written", cert_path=str(cert_path), key_path=str(key_path))
        return cert_path, key_path

    async def load_or_generate(
        self,
        cert_path: Path,
        key_path: Path,
        common_name: str,
        **kwargs: object,
    ) -> tuple[Path, Path]:
        """Return the configured certificate, generating it when missing or expired."""
        if cert_path.exists() and key_path.exists():
            expiry = self.check_expiry(cert_path)
            if expiry > datetime.now(UTC):
                logger.debug("Using existing certificate", cert_path=str(cert_path))
                return cert_path, key_path
            logger.warning("Certificate expired, regenerating", expiry=expiry.isoformat())

        self._cert_dir = cert_path.parent
        generated_cert, generated_key = await self.generate_self_signed(
            common_name=common_name,
            **kwargs,  # type: ignore[arg-type]
        )

        if generated_cert != cert_path:
            generated_cert.replace(cert_path)
        if generated_key != key_path:
            generated_key.replace(key_path)

        return cert_path, key_path

    def check_expiry(self, cert_path: Path) -> datetime:
        """Expiry of a certificate in UTC.

        Raises:
            ValueError: If the certificate cannot be loaded.
        """
        return _read_certificate(cert_path).not_valid_after_utc

    def get_certificate_info(self, cert_path: Path) -> dict[str, object]:
        """Subject, application URI and validity window of a certificate."""
        cert = _read_certificate(cert_path)

        try:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
            uris = san.get_values_for_type(x509.UniformResourceIdentifier)
        except x509.ExtensionNotFound:
            uris = []

        return {
            "subject": cert.subject.rfc4514_string(),
            "application_uri": uris[0] if uris else None,
            "serial_number": cert.serial_number,
            "not_valid_before": cert.not_valid_before_utc,
            "not_valid_after": cert.not_valid_after_utc,
        }
