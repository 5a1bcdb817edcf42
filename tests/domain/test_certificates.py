"""Tests for certificate tokens and URL derivation."""

from __future__ import annotations

import uuid

from editionctl.domain.certificates import CertificateUrlBuilder, generate_certificate_id


class TestGenerateCertificateId:
    def test_is_uuid4(self) -> None:
        token = generate_certificate_id()
        assert uuid.UUID(token).version == 4

    def test_unique(self) -> None:
        assert len({generate_certificate_id() for _ in range(200)}) == 200


class TestCertificateUrlBuilder:
    def test_builds_url_from_base(self) -> None:
        build = CertificateUrlBuilder(base_url="https://prints.example.com/")
        url = build("U-1", "tok")
        assert url == "https://prints.example.com/certificate/U-1?token=tok"

    def test_custom_path(self) -> None:
        build = CertificateUrlBuilder(base_url="https://x.test", path="/coa/")
        assert build("U-1", "tok") == "https://x.test/coa/U-1?token=tok"

    def test_empty_path(self) -> None:
        build = CertificateUrlBuilder(base_url="https://x.test", path="")
        assert build("U-1", "tok") == "https://x.test/U-1?token=tok"

    def test_unit_id_is_escaped(self) -> None:
        build = CertificateUrlBuilder(base_url="https://x.test")
        assert build("a/b c", "tok") == "https://x.test/certificate/a%2Fb%20c?token=tok"

    def test_does_not_depend_on_rank(self) -> None:
        build = CertificateUrlBuilder(base_url="https://x.test")
        assert build("U-1", "tok") == build("U-1", "tok")
