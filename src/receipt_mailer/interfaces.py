"""
Collaborator interfaces consumed by the batch pipeline and the dispatcher.

Each protocol is satisfied by a default adapter in this package
(spreadsheet parser, PDF renderer, QR generator, local storage, Postgres
repositories, SMTP transport) and by plain test doubles.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from .models import Beneficiary, DeliveryJob, OrganizationProfile, SenderSettings


class BeneficiaryParser(Protocol):
    def parse_beneficiaries(self, path: Path) -> list[Beneficiary]: ...


class OrganizationParser(Protocol):
    def parse_organization(self, path: Path) -> OrganizationProfile: ...


class PaymentCodeGenerator(Protocol):
    def generate(self, profile: OrganizationProfile, beneficiary: Beneficiary) -> bytes:
        """Return the encoded payment code image."""
        ...


class ArtifactRenderer(Protocol):
    def prepare_template(self, profile: OrganizationProfile, output_dir: Path) -> Path:
        """Stamp the organization credentials once; return the per-request template."""
        ...

    def render(
        self,
        template: Path,
        profile: OrganizationProfile,
        beneficiary: Beneficiary,
        payment_code: bytes,
        output_dir: Path,
    ) -> Path:
        """Render one receipt and return its path."""
        ...


class FileStorage(Protocol):
    def store(self, file_name: str, data: bytes) -> Path: ...

    def make_run_dir(self, kind: str) -> Path:
        """Create a fresh directory for the files one request produces."""
        ...


class RecipientMappingStore(Protocol):
    async def get(self) -> SenderSettings: ...


class HistoryStore(Protocol):
    async def append(self, file_name: str, file_data: bytes) -> None: ...


class Transport(Protocol):
    async def deliver(self, job: DeliveryJob) -> None:
        """Deliver one job; raise on failure. Must be safe to call concurrently."""
        ...
