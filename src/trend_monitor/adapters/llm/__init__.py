"""LLM writer adapters."""

from trend_monitor.adapters.llm.writer_client import (
    DigestWriterClient,
    ModelSwitchLease,
    ModelSwitchLock,
    SubprocessWriterCli,
    WriterBackend,
    WriterOutput,
)

__all__ = [
    "DigestWriterClient",
    "ModelSwitchLease",
    "ModelSwitchLock",
    "SubprocessWriterCli",
    "WriterBackend",
    "WriterOutput",
]
