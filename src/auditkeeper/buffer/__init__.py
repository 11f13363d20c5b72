"""Write buffering — bounded queue and batch flusher."""

from auditkeeper.buffer.flusher import BatchFlusher
from auditkeeper.buffer.queue import WriteQueue

__all__ = ["BatchFlusher", "WriteQueue"]
