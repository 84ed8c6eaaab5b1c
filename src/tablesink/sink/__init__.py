"""Transactional sink: committer, its configuration and the polling runner."""

from tablesink.sink.committer import BatchCommitter
from tablesink.sink.config import BatchCommitterConfig
from tablesink.sink.runner import RunnerRetryConfig, SinkRunner

__all__ = ["BatchCommitter", "BatchCommitterConfig", "RunnerRetryConfig", "SinkRunner"]
