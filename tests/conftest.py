"""
Shared fixtures: openssl s_client transcripts in the dialects we parse.
"""

import stat
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

MODERN_TRANSCRIPT = """CONNECTED(00000003)
depth=2 C = US, O = Example Trust, CN = Example Root CA
verify return:1
depth=1 C = US, O = Example CA, CN = Example Issuing CA
verify return:1
depth=0 CN = example.com
verify return:1
---
Certificate chain
 0 s:CN = example.com
   i:C = US, O = Example CA, CN = Example Issuing CA
   a:PKEY: rsaEncryption, 2048 (bit); sigalg: RSA-SHA256
   v:NotBefore: {not_before}; NotAfter: {not_after}
 1 s:C = US, O = Example CA, CN = Example Issuing CA
   i:C = US, O = Example Trust, CN = Example Root CA
   a:PKEY: rsaEncryption, 4096 (bit); sigalg: RSA-SHA384
   v:NotBefore: Jan  1 00:00:00 2020 GMT; NotAfter: Jan  1 00:00:00 2099 GMT
---
Server certificate
-----BEGIN CERTIFICATE-----
MIIFakeCertificateBodyForTestsOnly
-----END CERTIFICATE-----
subject=CN = example.com
issuer=C = US, O = Example CA, CN = Example Issuing CA
---
No client certificate CA names sent
Peer signing digest: SHA256
Peer signature type: RSA-PSS
Server Temp Key: X25519, 253 bits
---
SSL handshake has read 4520 bytes and written 386 bytes
Verification: OK
---
New, TLSv1.3, Cipher is TLS_AES_256_GCM_SHA384
Server public key is 2048 bit
Secure Renegotiation IS NOT supported
---
Post-Handshake New Session Ticket arrived:
SSL-Session:
    Protocol  : TLSv1.3
    Cipher    : TLS_AES_256_GCM_SHA384
    Verify return code: 0 (ok)
---
DONE
"""

LEGACY_TRANSCRIPT = """CONNECTED(00000003)
depth=0 CN = legacy.example.org
verify error:num=18:self signed certificate
verify return:1
depth=0 CN = legacy.example.org
verify return:1
---
Certificate chain
 0 s:/CN=legacy.example.org
   i:/CN=legacy.example.org
---
Server certificate
-----BEGIN CERTIFICATE-----
MIIFakeLegacyCertificateBody
-----END CERTIFICATE-----
subject=/CN=legacy.example.org
issuer=/CN=legacy.example.org
notBefore={not_before}
notAfter={not_after}
---
New, TLSv1/SSLv3, Cipher is ECDHE-RSA-AES256-GCM-SHA384
Server public key is 1024 bit
SSL-Session:
    Protocol  : TLSv1.2
    Cipher    : ECDHE-RSA-AES256-GCM-SHA384
    Verify return code: 18 (self signed certificate)
---
"""

SELF_SIGNED_CHAIN_TRANSCRIPT = """CONNECTED(00000003)
depth=1 CN = Internal Root
verify error:num=19:self-signed certificate in certificate chain
verify return:1
depth=0 CN = intranet.corp
verify return:1
---
Certificate chain
 0 s:CN = intranet.corp
   i:CN = Internal Root
   a:PKEY: id-ecPublicKey, 256 (bit); sigalg: ecdsa-with-SHA256
   v:NotBefore: Jan  1 00:00:00 2024 GMT; NotAfter: {not_after}
---
Server certificate
subject=CN = intranet.corp
---
SSL-Session:
    Protocol  : TLSv1.3
    Cipher    : TLS_AES_128_GCM_SHA256
---
"""

REFUSED_TRANSCRIPT = """40F7A1B2C47F0000:error:8000006F:system library:BIO_connect:Connection refused:../crypto/bio/bio_sock2.c:114:calling connect()
connect: Connection refused
connect:errno=111
"""


def openssl_date(moment: datetime) -> str:
    """Format an instant the way openssl prints it ("Aug  2 04:39:31 2025 GMT")."""
    return f"{moment.strftime('%b')} {moment.day:>2} {moment.strftime('%H:%M:%S %Y')} GMT"


@pytest.fixture
def transcript() -> Callable[..., str]:
    """Build a modern transcript expiring `days` from now."""

    def build(days: float = 200, template: str = MODERN_TRANSCRIPT) -> str:
        now = datetime.now(timezone.utc).replace(microsecond=0)
        return template.format(
            not_before=openssl_date(now - timedelta(days=90)),
            not_after=openssl_date(now + timedelta(days=days)),
        )

    return build


@pytest.fixture
def fake_openssl(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable shell script standing in for the openssl binary."""

    def write(body: str, name: str = "openssl") -> str:
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return write
