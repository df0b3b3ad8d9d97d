"""
Result objects for core operations.

Provides a unified result structure the CLI uses to display operation
outcomes consistently.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


@dataclass
class OperationResult:
    """
    Unified result object for all core operations.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "dump_device", "erase_device")
        device: Device name on the target
        region: Target region description (e.g., "0x1000-0x2000")
        bytes_len: Number of bytes processed
        hashes: Dict of hash values (sha256 of transferred data)
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure, outermost first
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
        exception: The exception that failed the operation, if any
    """
    ok: bool
    operation: str
    device: str = ""
    region: str = ""
    bytes_len: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    exception: Optional[BaseException] = field(default=None, repr=False)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    @classmethod
    def success(
        cls,
        operation: str,
        device: str = "",
        region: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(
            ok=True,
            operation=operation,
            device=device,
            region=region,
            bytes_len=bytes_len,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        device: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(
            ok=False,
            operation=operation,
            device=device,
            **kwargs,
        )
        result.errors.append(error)
        return result


def format_region(offset: int, length: int) -> str:
    """Describe a byte range as "0xSTART-0xEND" (end exclusive)."""
    return f"0x{offset:08X}-0x{offset + length:08X}"
