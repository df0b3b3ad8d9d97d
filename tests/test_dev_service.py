"""Tests for the Dev.* service client."""

import base64
from unittest.mock import MagicMock

import pytest

from rpc_service_dev.protocol import DevService, DeviceInfo, RPCFrameError


def make_service(result=None):
    transport = MagicMock()
    transport.call.return_value = result
    return DevService(transport), transport


def test_get_info_parses_size_and_erase_sizes():
    service, transport = make_service({"size": 4194304, "erase_sizes": [4096, 65536]})

    info = service.get_info("sfl0")

    assert info == DeviceInfo(name="sfl0", size=4194304, erase_sizes=[4096, 65536])
    transport.call.assert_called_once_with("Dev.GetInfo", {"name": "sfl0"}, ctx=None)


def test_get_info_without_erase_sizes():
    service, _ = make_service({"size": 1024})
    assert service.get_info("fs0").erase_sizes == []


@pytest.mark.parametrize("reply", [None, {}, {"size": "big"}, [1024]])
def test_get_info_bad_reply(reply):
    service, _ = make_service(reply)
    with pytest.raises(RPCFrameError):
        service.get_info("sfl0")


def test_read_returns_encoded_data():
    service, transport = make_service({"data": "3q2+7w=="})

    assert service.read("sfl0", 512, 4) == "3q2+7w=="
    transport.call.assert_called_once_with(
        "Dev.Read", {"name": "sfl0", "offset": 512, "len": 4}, ctx=None
    )


def test_read_without_data_is_frame_error():
    service, _ = make_service({"len": 4})
    with pytest.raises(RPCFrameError):
        service.read("sfl0", 0, 4)


def test_write_encodes_base64_and_erase_len():
    service, transport = make_service()

    service.write("sfl0", 0x1000, b"\xde\xad\xbe\xef", erase_len=4096)

    method, args = transport.call.call_args[0]
    assert method == "Dev.Write"
    assert args["offset"] == 0x1000
    assert base64.b64decode(args["data"]) == b"\xde\xad\xbe\xef"
    assert args["erase_len"] == 4096


def test_write_omits_zero_erase_len():
    service, transport = make_service()
    service.write("sfl0", 0, b"x")
    _, args = transport.call.call_args[0]
    assert "erase_len" not in args


def test_erase_create_remove():
    service, transport = make_service()

    service.erase("sfl0", 0, 4096)
    service.create("ram0", "RAM", '{"size": 65536}')
    service.remove("ram0")

    methods = [c[0][0] for c in transport.call.call_args_list]
    assert methods == ["Dev.Erase", "Dev.Create", "Dev.Remove"]
    assert transport.call.call_args_list[0][0][1] == {"name": "sfl0", "offset": 0, "len": 4096}
    assert transport.call.call_args_list[1][0][1] == {
        "name": "ram0",
        "type": "RAM",
        "opts": '{"size": 65536}',
    }
