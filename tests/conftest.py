"""
Pytest configuration and shared fixtures.

Key fixtures:
- organization: OrganizationProfile with realistic credentials
- beneficiaries: three payer rows
- fake collaborators (storage, renderer, code generator, stores, transport)
  for driving BatchPipeline and BulkDispatcher without I/O

No SMTP server, database or font files are needed: every external
collaborator is faked or mocked.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from receipt_mailer.models import (
    Beneficiary,
    DeliveryJob,
    OrganizationProfile,
    RecipientMapping,
    SenderSettings,
)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def organization() -> OrganizationProfile:
    return OrganizationProfile(
        name='ООО Лицей',
        settlement_account='40702810900000000001',
        bank_name='ПАО Сбербанк',
        bic='044525225',
        correspondent_account='30101810400000000225',
        payee_inn='7701234567',
        kpp='770101001',
        extra_params='TechCode=02',
    )


@pytest.fixture
def beneficiaries() -> list[Beneficiary]:
    return [
        Beneficiary(full_name='Иванов Иван', personal_account='001', amount='1200,5'),
        Beneficiary(full_name='Петров Петр', personal_account='002', amount='300'),
        Beneficiary(full_name='Сидоров Сидор', personal_account='003', amount='490.99'),
    ]


@pytest.fixture
def mapping() -> RecipientMapping:
    return RecipientMapping.from_dict(
        {
            'Иванов Иван': 'ivanov@example.com',
            'Петров Петр': 'petrov@example.com',
            'Сидоров Сидор': 'sidorov@example.com',
        }
    )


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeStorage:
    """FileStorage writing into a pytest tmp_path."""

    def __init__(self, base: Path):
        self.base = base
        self.stored: list[str] = []
        self.run_dirs: list[str] = []

    def store(self, file_name: str, data: bytes) -> Path:
        path = self.base / 'uploads' / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self.stored.append(file_name)
        return path

    def make_run_dir(self, kind: str) -> Path:
        path = self.base / kind / str(len(self.run_dirs))
        path.mkdir(parents=True, exist_ok=True)
        self.run_dirs.append(kind)
        return path


class FakeRenderer:
    """ArtifactRenderer writing small text files instead of PDFs."""

    def __init__(self):
        self.rendered: list[str] = []

    def prepare_template(self, profile, output_dir: Path) -> Path:
        path = output_dir / 'template.pdf'
        path.write_text(profile.name)
        return path

    def render(self, template, profile, beneficiary, payment_code, output_dir: Path) -> Path:
        path = output_dir / f"{beneficiary.file_stem}.pdf"
        path.write_bytes(payment_code)
        self.rendered.append(beneficiary.full_name)
        return path


class FakeCodeGenerator:
    def generate(self, profile, beneficiary) -> bytes:
        return f"code:{beneficiary.full_name}".encode()


class FakeParser:
    """Both parsers, returning fixed results."""

    def __init__(self, beneficiaries, organization):
        self.beneficiaries = beneficiaries
        self.organization = organization

    def parse_beneficiaries(self, path):
        return list(self.beneficiaries)

    def parse_organization(self, path):
        return self.organization


class FakeSettingsStore:
    def __init__(self, mapping: RecipientMapping | None, sender_email: str = 'org@example.com'):
        self.settings = SenderSettings(mapping=mapping, sender_email=sender_email)

    async def get(self) -> SenderSettings:
        return self.settings


class FakeHistoryStore:
    def __init__(self, events: list[str] | None = None):
        self.records: list[tuple[str, bytes]] = []
        self.events = events if events is not None else []

    async def append(self, file_name: str, file_data: bytes) -> None:
        self.events.append('history')
        self.records.append((file_name, file_data))


class RecordingTransport:
    """
    Transport that records deliveries and tracks peak concurrency.

    ``failures`` maps recipient -> exception raised for that recipient.
    """

    def __init__(self, delay: float = 0.01, failures: dict[str, Exception] | None = None):
        self.delay = delay
        self.failures = failures or {}
        self.delivered: list[str] = []
        self.attempts: list[str] = []
        self.jobs: list[DeliveryJob] = []
        self.in_flight = 0
        self.peak = 0

    async def deliver(self, job: DeliveryJob) -> None:
        self.attempts.append(job.recipient)
        self.jobs.append(job)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if job.recipient in self.failures:
                raise self.failures[job.recipient]
            self.delivered.append(job.recipient)
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_storage(tmp_path) -> FakeStorage:
    return FakeStorage(tmp_path)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
