"""Shared fakes for the Dev service and the serial port."""

import base64

import pytest

from rpc_service_dev.protocol import DeviceInfo, RPCCallError


class FakeDevService:
    """
    In-memory stand-in for DevService.

    Records every call; reads at fail_at_offset raise an RPC error.
    """

    def __init__(self, image: bytes = b"", fail_at_offset=None, info_error=None, corrupt_at_offset=None):
        self.image = bytearray(image)
        self.fail_at_offset = fail_at_offset
        self.corrupt_at_offset = corrupt_at_offset
        self.info_error = info_error
        self.reads = []
        self.writes = []
        self.erases = []
        self.info_calls = 0

    def get_info(self, name, ctx=None):
        self.info_calls += 1
        if self.info_error is not None:
            raise self.info_error
        return DeviceInfo(name=name, size=len(self.image), erase_sizes=[4096])

    def read(self, name, offset, length, ctx=None):
        self.reads.append((offset, length))
        if offset == self.fail_at_offset:
            raise RPCCallError(500, "read error: -1", method="Dev.Read")
        if offset == self.corrupt_at_offset:
            return "!!not base64!!"
        return base64.b64encode(bytes(self.image[offset:offset + length])).decode("ascii")

    def write(self, name, offset, data, erase_len=0, ctx=None):
        self.writes.append((offset, bytes(data)))
        self.image[offset:offset + len(data)] = data

    def erase(self, name, offset, length, ctx=None):
        self.erases.append((offset, length))
        self.image[offset:offset + length] = b"\xff" * length


@pytest.fixture
def image() -> bytes:
    return bytes(range(256)) * 6  # 1536 bytes


@pytest.fixture
def service(image) -> FakeDevService:
    return FakeDevService(image)


@pytest.fixture
def make_service():
    """Factory for FakeDevService with custom failure points."""
    return FakeDevService
