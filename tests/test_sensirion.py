"""Tests for homesense.sensors.sensirion, the Sensirion command codec."""

import threading
import time
from unittest.mock import Mock, call, patch

import pytest

from homesense.errors import ChecksumError, ProtocolError, RangeError
from homesense.sensors.sensirion import (
    Command,
    CommandChannel,
    bytes_to_string,
    crc8,
    decode,
    encode,
    to_int16,
    unpack_words,
)

from conftest import encode_words

READ = Command(0xEC05, "Read measurement", delay=0.001, words=3)
SET = Command(0x241D, "Set temp offset", delay=0.001)
START = Command(0x21B1, "Start periodic measurement")


class TestCrc8:
    def test_datasheet_example(self):
        assert crc8(b"\xbe\xef") == 0x92

    def test_zero_word(self):
        assert crc8(b"\x00\x00") == 0x81

    def test_empty(self):
        assert crc8(b"") == 0xFF


class TestEncode:
    def test_opcode_only(self):
        assert encode(START) == b"\x21\xb1"

    def test_with_argument(self):
        frame = encode(SET, 0xBEEF)
        assert frame == b"\x24\x1d\xbe\xef\x92"

    def test_argument_bounds(self):
        assert encode(SET, 0)[2:4] == b"\x00\x00"
        assert encode(SET, 0xFFFF)[2:4] == b"\xff\xff"

    @pytest.mark.parametrize("argument", [-1, 0x10000])
    def test_argument_out_of_range(self, argument):
        with pytest.raises(RangeError):
            encode(SET, argument)


class TestDecode:
    def test_strips_crc(self):
        assert decode(encode_words([0xBEEF, 0x0102]), 2) == b"\xbe\xef\x01\x02"

    def test_wrong_length(self):
        with pytest.raises(ProtocolError):
            decode(encode_words([0xBEEF]), 2)

    def test_bad_crc_reports_both_values(self):
        response = bytearray(encode_words([0x0001, 0xBEEF]))
        response[5] ^= 0xFF
        with pytest.raises(ChecksumError) as exc:
            decode(bytes(response), 2)
        assert exc.value.expected == 0x92
        assert exc.value.received == 0x92 ^ 0xFF

    def test_no_words(self):
        assert decode(b"", 0) == b""


class TestHelpers:
    def test_unpack_words(self):
        assert unpack_words(b"\x01\x02\xff\xff") == [0x0102, 0xFFFF]

    def test_to_int16(self):
        assert to_int16(0x7FFF) == 32767
        assert to_int16(0x8000) == -32768
        assert to_int16(0xFFFF) == -1

    def test_bytes_to_string(self):
        assert bytes_to_string(b"SEN55\x00\x00\x00") == "SEN55"


class TestCommandChannel:
    def test_write_delay_read_order(self):
        bus = Mock()
        bus.read.return_value = encode_words([1, 2, 3])
        channel = CommandChannel(bus, 0x62)

        with patch("time.sleep") as sleep:
            manager = Mock()
            manager.attach_mock(bus.write, "write")
            manager.attach_mock(sleep, "sleep")
            manager.attach_mock(bus.read, "read")
            data = channel.execute(READ)

        assert manager.mock_calls == [
            call.write(0x62, b"\xec\x05"),
            call.sleep(0.001),
            call.read(0x62, 9),
        ]
        assert unpack_words(data) == [1, 2, 3]

    def test_no_answer_skips_read(self):
        bus = Mock()
        channel = CommandChannel(bus, 0x62)
        with patch("time.sleep") as sleep:
            assert channel.execute(START) == b""
        sleep.assert_not_called()
        bus.read.assert_not_called()

    def test_range_error_before_bus_io(self):
        bus = Mock()
        channel = CommandChannel(bus, 0x62)
        with pytest.raises(RangeError):
            channel.execute(SET, 70000)
        bus.write.assert_not_called()

    def test_checksum_error_propagates(self):
        bus = Mock()
        response = bytearray(encode_words([1, 2, 3]))
        response[2] ^= 0x01
        bus.read.return_value = bytes(response)
        channel = CommandChannel(bus, 0x62)
        with patch("time.sleep"):
            with pytest.raises(ChecksumError):
                channel.execute(READ)

    def test_read_words(self):
        bus = Mock()
        bus.read.return_value = encode_words([0x8006, 1, 2])
        channel = CommandChannel(bus, 0x62)
        with patch("time.sleep"):
            assert channel.read_words(READ) == [0x8006, 1, 2]


class RecordingBus:
    """Logs (thread, address, operation) for every transfer and lingers in it."""

    def __init__(self, pause=0.002, barrier=None):
        self.events = []
        self.pause = pause
        self.barrier = barrier
        self._guard = threading.Lock()

    def _record(self, address, op):
        with self._guard:
            self.events.append((threading.get_ident(), address, op))
        time.sleep(self.pause)

    def write(self, address, data):
        self._record(address, "write")
        if self.barrier is not None:
            self.barrier.wait()

    def read(self, address, length):
        self._record(address, "read")
        return encode_words([address] * (length // 3))


def _run_threads(*targets):
    errors = []

    def guarded(target):
        try:
            target()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=guarded, args=(t,)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)
    return errors


class TestCommandChannelLocking:
    WORD = Command(0xE4B8, "Data ready", delay=0.002, words=1)

    def test_exchanges_on_one_device_do_not_interleave(self):
        bus = RecordingBus()
        channel = CommandChannel(bus, 0x62)

        def worker():
            for _ in range(5):
                assert channel.read_words(self.WORD) == [0x62]

        assert _run_threads(worker, worker) == []
        assert len(bus.events) == 20
        for (w_thread, _, w_op), (r_thread, _, r_op) in zip(bus.events[::2], bus.events[1::2]):
            assert (w_op, r_op) == ("write", "read")
            assert w_thread == r_thread

    def test_separate_devices_run_concurrently(self):
        # Both writes must be in flight at once for the barrier to release
        barrier = threading.Barrier(2, timeout=2)
        bus = RecordingBus(barrier=barrier)
        first = CommandChannel(bus, 0x62)
        second = CommandChannel(bus, 0x69)

        assert _run_threads(
            lambda: first.read_words(self.WORD),
            lambda: second.read_words(self.WORD),
        ) == []
        assert not barrier.broken
