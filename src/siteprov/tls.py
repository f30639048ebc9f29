"""Inspection of certificates issued by certbot into the Let's Encrypt live directory."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID


class TLSInspectionError(RuntimeError):
    """Raised when an issued certificate cannot be located or parsed."""


@dataclass(frozen=True)
class CertificateInfo:
    """Summary of an installed certificate."""

    path: Path
    subject: str | None
    names: tuple[str, ...]
    not_valid_before: datetime
    not_valid_after: datetime

    def days_remaining(self, now: datetime | None = None) -> int:
        """Return whole days until expiry (negative once expired)."""
        moment = now or datetime.now(tz=UTC)
        return (self.not_valid_after - moment).days

    def covers(self, domains: Iterable[str]) -> bool:
        """Return ``True`` when every name in *domains* is on the certificate."""
        names = {name.lower() for name in self.names}
        return all(domain.lower() in names for domain in domains)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "path": str(self.path),
            "subject": self.subject,
            "names": list(self.names),
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
        }


@dataclass(slots=True)
class CertificateInspector:
    """Read ``<live_dir>/<domain>/cert.pem`` as written by certbot."""

    live_dir: Path = Path("/etc/letsencrypt/live")

    def certificate_path(self, domain: str) -> Path:
        """Return the leaf certificate path certbot uses for *domain*."""
        return self.live_dir / domain / "cert.pem"

    def inspect(self, domain: str) -> CertificateInfo:
        """Load and summarise the certificate issued for *domain*."""
        path = self.certificate_path(domain)
        try:
            cert = _load_certificate(path)
        except FileNotFoundError as exc:
            raise TLSInspectionError(f"Certificate not found: {path}") from exc
        except (OSError, ValueError) as exc:
            raise TLSInspectionError(f"Unable to read certificate {path}: {exc}") from exc

        subject_attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        subject = str(subject_attrs[0].value) if subject_attrs else None
        return CertificateInfo(
            path=path,
            subject=subject,
            names=_subject_alt_names(cert, fallback=subject),
            not_valid_before=_as_utc(cert.not_valid_before_utc),
            not_valid_after=_as_utc(cert.not_valid_after_utc),
        )


def _load_certificate(path: Path) -> x509.Certificate:
    data = path.read_bytes()
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        return x509.load_der_x509_certificate(data)


def _subject_alt_names(cert: x509.Certificate, *, fallback: str | None) -> tuple[str, ...]:
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return (fallback,) if fallback else ()
    return tuple(extension.value.get_values_for_type(x509.DNSName))


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


__all__ = ["CertificateInfo", "CertificateInspector", "TLSInspectionError"]
