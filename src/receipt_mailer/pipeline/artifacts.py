"""
Receipt generation stage.

Renders one receipt per beneficiary and splits the results by whether the
beneficiary has a mapped address:
- mapped: receipt goes into ``artifacts`` (address -> path) and is delivered
- unmapped: receipt is still rendered, listed in ``missing`` (name -> path)

A missing mapping never stops the stage. Any rendering failure does, since
it points to a broken template or resource rather than to one bad row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..cancellation import CancellationToken
from ..errors import (
    MissingMappingError,
    OperationCanceledError,
    ReceiptMailerError,
    RenderError,
)
from ..interfaces import ArtifactRenderer, FileStorage, PaymentCodeGenerator
from ..logging import get_logger
from ..models import Beneficiary, OrganizationProfile, RecipientMapping

logger = get_logger(__name__)


@dataclass
class GenerationOutput:
    """Receipts produced for one request."""

    artifacts: dict[str, Path] = field(default_factory=dict)
    missing: dict[str, Path] = field(default_factory=dict)
    skipped: int = 0

    @property
    def generated_count(self) -> int:
        return len(self.artifacts) + len(self.missing)

    @property
    def mapping_error(self) -> MissingMappingError | None:
        if not self.missing:
            return None
        return MissingMappingError({name: str(path) for name, path in self.missing.items()})


class ArtifactGenerator:
    """Renders receipts with payment codes for a list of beneficiaries."""

    def __init__(
        self,
        renderer: ArtifactRenderer,
        code_generator: PaymentCodeGenerator,
        storage: FileStorage,
    ):
        self.renderer = renderer
        self.code_generator = code_generator
        self.storage = storage

    def generate(
        self,
        beneficiaries: list[Beneficiary],
        profile: OrganizationProfile,
        mapping: RecipientMapping,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationOutput:
        """
        Render a receipt for every beneficiary.

        Args:
            beneficiaries: Parsed payer rows
            profile: Organization credentials shared by every receipt
            mapping: Read-only name -> address mapping
            cancel_token: Checked before each beneficiary

        Returns:
            GenerationOutput with mapped artifacts and unmapped receipts

        Raises:
            RenderError: If the template, a payment code or a receipt fails
            OperationCanceledError: If the request is cancelled mid-stage
        """
        output = GenerationOutput()

        try:
            patterns_dir = self.storage.make_run_dir('patterns')
            receipts_dir = self.storage.make_run_dir('sent')
            template = self.renderer.prepare_template(profile, patterns_dir)
        except ReceiptMailerError:
            raise
        except Exception as e:
            logger.error('generation.template_failed', error=str(e), error_type=type(e).__name__)
            raise RenderError(
                f"Receipt template preparation failed: {e}",
                context={'organization': profile.name},
            ) from e

        logger.info('generation.started', beneficiaries=len(beneficiaries), template=str(template))

        for beneficiary in beneficiaries:
            if cancel_token is not None and cancel_token.cancelled:
                logger.warning('generation.aborted', reason=cancel_token.reason)
                raise OperationCanceledError(
                    'receipt generation canceled',
                    context={'generated': output.generated_count},
                )

            if not beneficiary.full_name.strip():
                logger.warning('generation.empty_name_skipped')
                output.skipped += 1
                continue

            path = self._render_one(template, profile, beneficiary, receipts_dir)

            address = mapping.resolve(beneficiary.full_name)
            if address:
                if address in output.artifacts:
                    # One message per address; the later receipt replaces the earlier one
                    logger.warning(
                        'generation.duplicate_recipient',
                        beneficiary=beneficiary.full_name,
                        replaced=str(output.artifacts[address]),
                    )
                output.artifacts[address] = path
            else:
                output.missing[beneficiary.full_name] = path

        if output.missing:
            logger.warning('generation.missing_emails', missing_count=len(output.missing))

        logger.info(
            'generation.complete',
            generated=output.generated_count,
            mapped=len(output.artifacts),
            missing=len(output.missing),
            skipped=output.skipped,
        )
        return output

    def _render_one(
        self,
        template: Path,
        profile: OrganizationProfile,
        beneficiary: Beneficiary,
        receipts_dir: Path,
    ) -> Path:
        try:
            code = self.code_generator.generate(profile, beneficiary)
            return self.renderer.render(template, profile, beneficiary, code, receipts_dir)
        except ReceiptMailerError:
            raise
        except Exception as e:
            logger.error(
                'generation.render_failed',
                beneficiary=beneficiary.full_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RenderError(
                f"Receipt rendering failed: {e}",
                context={'beneficiary': beneficiary.full_name},
            ) from e
