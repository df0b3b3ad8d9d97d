"""
Safety context and write gating for device operations.

Centralizes all confirmation rules for operations that modify the target
(Dev.Write, Dev.Erase, Dev.Create, Dev.Remove). Reads are never gated.
"""

import sys
from dataclasses import dataclass
from typing import Optional, Callable

# Confirmation token required for non-interactive writes
CONFIRMATION_TOKEN = "WRITE"


class WritePermissionError(Exception):
    """
    Raised when a write operation is not permitted.

    Attributes:
        reason: Human-readable explanation of why write was denied
        details: Additional context (device, region, etc.)
    """
    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


@dataclass
class SafetyContext:
    """
    Safety context for write operations.

    Attributes:
        write_enabled: Whether the --write flag was provided
        confirmation_token: For non-interactive mode, must match CONFIRMATION_TOKEN
        interactive: Whether the CLI can prompt for confirmation
        device: Target device name
        simulate: Whether this is a dry run
    """
    write_enabled: bool = False
    confirmation_token: Optional[str] = None
    interactive: bool = True
    device: str = ""
    simulate: bool = False

    # CLI sets these to prompt/display functions
    prompt_confirmation: Optional[Callable[[str], str]] = None
    show_details: Optional[Callable[[dict], None]] = None

    def to_details_dict(
        self,
        operation: str = "",
        target_region: str = "",
        bytes_length: int = 0,
    ) -> dict:
        """Create a details dictionary for display."""
        return {
            "operation": operation,
            "device": self.device or "Unknown",
            "target_region": target_region,
            "bytes_length": bytes_length,
        }


def require_write_permission(
    ctx: SafetyContext,
    operation: str = "",
    target_region: str = "",
    bytes_length: int = 0,
) -> None:
    """
    Enforce write permission rules.

    Rules enforced:
    1. If simulate mode: always allowed (no actual write)
    2. If write not enabled: raise with instructions
    3. Device name must be known
    4. If confirmation token present: must match exactly
    5. If interactive: prompt user for confirmation

    Raises:
        WritePermissionError: If write is not permitted
    """
    details = ctx.to_details_dict(operation, target_region, bytes_length)

    # Rule 1: Simulation mode is always allowed
    if ctx.simulate:
        return

    # Rule 2: Write must be explicitly enabled
    if not ctx.write_enabled:
        raise WritePermissionError(
            "Write operation requires explicit permission. Use --write flag.",
            details=details,
        )

    # Rule 3: Cannot write to an unnamed device
    if not ctx.device:
        raise WritePermissionError("Target device name is empty.", details=details)

    # Rule 4: Token-based confirmation for non-interactive
    if ctx.confirmation_token is not None:
        if ctx.confirmation_token.strip().upper() != CONFIRMATION_TOKEN:
            raise WritePermissionError(
                f"Confirmation token mismatch. Expected '{CONFIRMATION_TOKEN}'.",
                details=details,
            )
        return

    # Rule 5: Interactive confirmation required
    if not ctx.interactive:
        raise WritePermissionError(
            "Non-interactive mode requires confirmation_token.",
            details=details,
        )

    if ctx.show_details:
        ctx.show_details(details)

    if not ctx.prompt_confirmation:
        raise WritePermissionError(
            "Interactive confirmation required but no prompt handler set. "
            "Provide confirmation_token for non-interactive mode.",
            details=details,
        )

    user_input = ctx.prompt_confirmation(
        f"Type '{CONFIRMATION_TOKEN}' to proceed, or anything else to abort"
    )
    if user_input.strip().upper() != CONFIRMATION_TOKEN:
        raise WritePermissionError(
            "Confirmation failed. Write aborted by user.",
            details=details,
        )


def create_cli_safety_context(
    write_flag: bool,
    device: str = "",
    simulate: bool = False,
    confirmation_token: Optional[str] = None,
) -> SafetyContext:
    """
    Create a SafetyContext configured for CLI usage.

    The context is interactive only when stdin is a TTY and no token was
    given; the caller attaches the prompt callbacks.
    """
    interactive = sys.stdin.isatty() and confirmation_token is None

    return SafetyContext(
        write_enabled=write_flag,
        confirmation_token=confirmation_token,
        interactive=interactive,
        device=device,
        simulate=simulate,
    )
