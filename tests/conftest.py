from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest


@pytest.fixture()
def tls_files(tmp_path: Path) -> tuple[Path, Path]:
    """Self-signed certificate and key for 127.0.0.1, valid for one day."""
    if shutil.which("openssl") is None:
        pytest.skip("openssl not available to create test cert")

    cert_dir = tmp_path / "certs"
    cert_dir.mkdir()
    cert_file = cert_dir / "cert.pem"
    key_file = cert_dir / "key.pem"
    subprocess.run(
        [
            "openssl", "req", "-x509", "-nodes", "-days", "1",
            "-newkey", "rsa:2048",
            "-subj", "/CN=127.0.0.1",
            "-keyout", str(key_file),
            "-out", str(cert_file),
        ],
        check=True,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return cert_file, key_file


@pytest.fixture()
def site(tmp_path: Path) -> Path:
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>")
    return root
