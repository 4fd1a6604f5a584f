"""
Pipelines package for miniorm.

Re-exports the read and write pipelines so downstream code can import from
`miniorm.pipelines` directly.
"""

from miniorm.pipelines.base import Pipeline
from miniorm.pipelines.reader import ReadPipeline, RecordStream
from miniorm.pipelines.writer import DEFAULT_BATCH_SIZE, WriteAction, WritePipeline

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "Pipeline",
    "ReadPipeline",
    "RecordStream",
    "WriteAction",
    "WritePipeline",
]
