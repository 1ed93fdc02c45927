"""
Pipeline components: receipt generation and the batch orchestrator.
"""

from .artifacts import ArtifactGenerator, GenerationOutput
from .pipeline import BatchOutcome, BatchPipeline, BatchResult, PipelineStage

__all__ = [
    # Main Pipeline
    'BatchPipeline',
    'BatchResult',
    'BatchOutcome',
    'PipelineStage',
    # Generation
    'ArtifactGenerator',
    'GenerationOutput',
]
