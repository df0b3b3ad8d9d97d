"""Tests for core actions, results and write gating."""

import hashlib

import pytest

from rpc_service_dev.core.actions import (
    create_device,
    device_info,
    dump_device,
    erase_device,
    remove_device,
    write_device,
)
from rpc_service_dev.core.errors import ReadFailed, format_error_chain
from rpc_service_dev.core.parsing import DumpRequest
from rpc_service_dev.core.results import OperationResult, format_region
from rpc_service_dev.core.safety import (
    SafetyContext,
    WritePermissionError,
    require_write_permission,
)
from rpc_service_dev.protocol import RPCCallError


def allowed(device="sfl0", simulate=False) -> SafetyContext:
    return SafetyContext(
        write_enabled=True,
        confirmation_token="WRITE",
        interactive=False,
        device=device,
        simulate=simulate,
    )


class TestDumpAction:
    """Test the OperationResult wrapper around the dump loop."""

    def test_success_result(self, service, image, tmp_path):
        out = tmp_path / "dump.bin"
        result = dump_device(service, DumpRequest(device="sfl0", output=str(out)), chunk_size=1024)

        assert result.ok
        assert result.bytes_len == len(image)
        assert result.region == format_region(0, len(image))
        assert result.hashes["sha256"] == hashlib.sha256(image).hexdigest()
        assert result.metadata["chunks"] == 2
        assert any("Done" in line for line in result.logs)

    def test_failure_carries_error_chain(self, make_service, image, tmp_path):
        service = make_service(image, fail_at_offset=512)
        request = DumpRequest(device="sfl0", output=str(tmp_path / "d.bin"), length=1024)

        result = dump_device(service, request, chunk_size=512)

        assert not result.ok
        assert isinstance(result.exception, ReadFailed)
        assert result.errors == [
            "failed to read 'sfl0' 512 @ 512: RPC error 500: read error: -1"
        ]

    def test_empty_device_warns(self, make_service, tmp_path):
        result = dump_device(make_service(b""), DumpRequest(device="sfl0", output=str(tmp_path / "e.bin")))
        assert result.ok
        assert result.warnings


class TestInfoAction:
    def test_info(self, service, image):
        result = device_info(service, "sfl0")
        assert result.ok
        assert result.metadata == {"size": len(image), "erase_sizes": [4096]}

    def test_info_failure(self, make_service):
        service = make_service(info_error=RPCCallError(500, "dev open failed"))
        result = device_info(service, "nope")
        assert not result.ok
        assert "dev open failed" in result.errors[0]


class TestWriteAction:
    def test_write_in_chunks(self, service, image):
        data = b"\xaa" * 1000
        result = write_device(service, "sfl0", 100, data, allowed(), chunk_size=256)

        assert result.ok
        assert [offset for offset, _ in service.writes] == [100, 356, 612, 868]
        assert [len(piece) for _, piece in service.writes] == [256, 256, 256, 232]
        assert bytes(service.image[100:1100]) == data
        assert result.metadata["chunks"] == 4
        assert service.erases == []

    def test_erase_first(self, service):
        write_device(service, "sfl0", 0, b"\x01" * 10, allowed(), erase=True)
        assert service.erases == [(0, 10)]

    def test_denied_without_write_flag(self, service):
        ctx = SafetyContext(write_enabled=False, device="sfl0")
        result = write_device(service, "sfl0", 0, b"x", ctx)
        assert not result.ok
        assert result.metadata["permission_denied"]
        assert service.writes == []

    def test_dry_run(self, service):
        result = write_device(service, "sfl0", 0, b"abc", allowed(simulate=True))
        assert result.ok
        assert result.warnings
        assert service.writes == []

    def test_write_failure_reports_offset(self, service):
        def failing_write(name, offset, data, erase_len=0, ctx=None):
            if offset >= 512:
                raise RPCCallError(500, "write error: -3")
            service.writes.append((offset, data))

        service.write = failing_write
        result = write_device(service, "sfl0", 0, b"\x00" * 1024, allowed(), chunk_size=512)

        assert not result.ok
        assert result.bytes_len == 512
        assert "512 @ 512" in result.errors[0]


class TestOtherMutations:
    def test_erase(self, service):
        result = erase_device(service, "sfl0", 0, 4096, allowed())
        assert result.ok
        assert service.erases == [(0, 4096)]

    def test_create_and_remove(self):
        from unittest.mock import MagicMock

        service = MagicMock()
        assert create_device(service, "ram0", "RAM", "", allowed("ram0")).ok
        assert remove_device(service, "ram0", allowed("ram0")).ok
        service.create.assert_called_once()
        service.remove.assert_called_once()

    def test_remove_failure(self):
        from unittest.mock import MagicMock

        service = MagicMock()
        service.remove.side_effect = RPCCallError(500, "dev removal failed")
        result = remove_device(service, "ram0", allowed("ram0"))
        assert not result.ok
        assert result.errors == ["failed to remove 'ram0': RPC error 500: dev removal failed"]


class TestSafety:
    """Test write permission rules."""

    def test_simulate_always_allowed(self):
        require_write_permission(SafetyContext(simulate=True))

    def test_token_mismatch(self):
        ctx = SafetyContext(write_enabled=True, confirmation_token="yes", device="sfl0")
        with pytest.raises(WritePermissionError, match="mismatch"):
            require_write_permission(ctx)

    def test_token_case_insensitive(self):
        ctx = SafetyContext(write_enabled=True, confirmation_token=" write ", device="sfl0")
        require_write_permission(ctx)

    def test_interactive_prompt(self):
        shown = []
        ctx = SafetyContext(
            write_enabled=True,
            device="sfl0",
            interactive=True,
            prompt_confirmation=lambda text: "WRITE",
            show_details=shown.append,
        )
        require_write_permission(ctx, operation="erase_device", target_region="0x0-0x10")
        assert shown[0]["operation"] == "erase_device"

    def test_interactive_prompt_rejected(self):
        ctx = SafetyContext(
            write_enabled=True,
            device="sfl0",
            interactive=True,
            prompt_confirmation=lambda text: "no",
        )
        with pytest.raises(WritePermissionError, match="aborted"):
            require_write_permission(ctx)

    def test_non_interactive_without_token(self):
        ctx = SafetyContext(write_enabled=True, device="sfl0", interactive=False)
        with pytest.raises(WritePermissionError):
            require_write_permission(ctx)


class TestResults:
    def test_failure_records_error(self):
        result = OperationResult.failure("dump_device", "boom", device="sfl0")
        assert not result.ok
        assert result.device == "sfl0"
        assert result.errors == ["boom"]

    def test_exception_not_in_repr(self):
        result = OperationResult.success("device_info", device="sfl0", bytes_len=10)
        result.exception = RuntimeError("x")
        assert "RuntimeError" not in repr(result)


def test_format_error_chain_outermost_first():
    try:
        try:
            raise RPCCallError(404, "No handler for Dev.Read")
        except RPCCallError as e:
            raise ReadFailed("failed to read 'sfl0' 512 @ 0") from e
    except ReadFailed as err:
        assert format_error_chain(err) == (
            "failed to read 'sfl0' 512 @ 0: RPC error 404: No handler for Dev.Read"
        )
