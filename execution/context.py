import os
from dataclasses import dataclass, field
from typing import Any, Optional

from storage.types import NullOrder


@dataclass
class ExecutionContext:
    """Run-time context for query execution."""
    source: Optional[Any] = None  # CsvSource / MemorySource, None for FROM-less queries only
    null_order: NullOrder = NullOrder.LAST
    output_dir: str = field(default_factory=os.getcwd)  # Base for relative COPY paths

    def resolve_output_path(self, path: str) -> str:
        if os.path.isabs(path):
            return path
        return os.path.join(self.output_dir, path)
