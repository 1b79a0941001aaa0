# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""TLS server context for the implicit-TLS (SMTPS) listener.

Without operator-supplied files the listener uses an ephemeral
self-signed certificate generated at startup.  Clients are expected to
skip verification.
"""

import logging
import ssl
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


logger = logging.getLogger(__name__)

CERT_ORGANIZATION = "smtp2wwpm"
CERT_COMMON_NAME = "localhost"
CERT_VALIDITY = timedelta(days=3650)
CERT_BACKDATE = timedelta(hours=1)
RSA_KEY_SIZE = 2048


def generate_self_signed_cert(
    now: datetime | None = None,
) -> tuple[bytes, bytes]:
    """Generate a self-signed server certificate and its private key.

    Args:
        now: Reference time for the validity window (defaults to the
            current time).

    Returns:
        Tuple of (certificate PEM, unencrypted private key PEM).
    """
    if now is None:
        now = datetime.now(UTC)

    key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, CERT_ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, CERT_COMMON_NAME),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - CERT_BACKDATE)
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def create_server_context(
    cert_file: Path | str | None = None,
    key_file: Path | str | None = None,
) -> ssl.SSLContext:
    """Build the server-side SSL context.

    Args:
        cert_file: PEM certificate chain.  When omitted together with
            ``key_file``, a self-signed pair is generated.
        key_file: PEM private key matching ``cert_file``.

    Returns:
        Server context requiring TLS 1.2 or newer.

    Raises:
        ssl.SSLError: If the certificate or key cannot be loaded.
        OSError: If a supplied file cannot be read.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    if cert_file is not None and key_file is not None:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
        logger.info("Loaded TLS certificate from %s", cert_file)
        return context

    cert_pem, key_pem = generate_self_signed_cert()
    # load_cert_chain only reads files; the directory goes away after.
    with tempfile.TemporaryDirectory(prefix="smtp2wwpm-tls-") as tmpdir:
        cert_path = Path(tmpdir) / "cert.pem"
        key_path = Path(tmpdir) / "key.pem"
        cert_path.write_bytes(cert_pem)
        key_path.write_bytes(key_pem)
        key_path.chmod(0o600)
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)

    logger.info(
        "Generated self-signed TLS certificate (O=%s, CN=%s)",
        CERT_ORGANIZATION,
        CERT_COMMON_NAME,
    )
    return context
