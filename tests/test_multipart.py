from __future__ import annotations

import io
import logging
import uuid
from pathlib import Path

import pytest
from _pytest.logging import LogCaptureFixture

from formstream import (
    BytesPayload,
    FilePayload,
    InvalidPartError,
    MultipartBodyEncoder,
    StreamPayload,
    TextPayload,
    build_boundary,
    build_header,
)
from tests.helpers.doubles import FailingSink, RecordingSink, StubPayload

FIELD_HEADER = (
    b'Content-Disposition: form-data; name="field"\r\n'
    b"Content-Type: text/plain\r\n"
    b"Content-Length: 5\r\n"
    b"Content-Transfer-Encoding: binary\r\n"
    b"\r\n"
)


def test_single_part_scenario_bytes_and_length() -> None:
    encoder = MultipartBodyEncoder("B1")
    encoder.add_part("field", BytesPayload("text/plain", b"hello"))

    part = encoder.parts[0]
    assert part.boundary_bytes == b"--B1\r\n"
    assert part.header_bytes == FIELD_HEADER
    assert encoder.mime_type() == "multipart/form-data; boundary=B1"
    assert encoder.footer == b"\r\n--B1--\r\n"
    assert encoder.length() == 6 + len(FIELD_HEADER) + 5 + 10
    assert encoder.to_bytes() == b"--B1\r\n" + FIELD_HEADER + b"hello" + b"\r\n--B1--\r\n"


def test_zero_parts_writes_only_footer(sink: RecordingSink) -> None:
    encoder = MultipartBodyEncoder("empty")

    encoder.write_to(sink)

    assert sink.writes == [b"\r\n--empty--\r\n"]
    assert encoder.length() == len(encoder.footer)
    assert encoder.part_count() == 0


def test_default_boundary_is_random_uuid() -> None:
    first = MultipartBodyEncoder()
    second = MultipartBodyEncoder()

    assert first.boundary != second.boundary
    assert str(uuid.UUID(first.boundary)) == first.boundary
    assert first.mime_type().endswith(first.boundary)


def test_empty_boundary_rejected() -> None:
    with pytest.raises(InvalidPartError):
        MultipartBodyEncoder("")


@pytest.mark.parametrize(
    ("is_first", "is_last", "expected"),
    [
        (True, False, b"--abc\r\n"),
        (False, False, b"\r\n--abc\r\n"),
        (False, True, b"\r\n--abc--\r\n"),
        (True, True, b"--abc--\r\n"),
    ],
)
def test_build_boundary_variants(is_first: bool, is_last: bool, expected: bytes) -> None:
    assert build_boundary("abc", is_first, is_last) == expected


def test_build_header_with_filename_and_unknown_length() -> None:
    payload = StubPayload(mime_type="image/png", file_name="cat.png", length=None)

    header = build_header("avatar", "8bit", payload)

    assert header == (
        b'Content-Disposition: form-data; name="avatar"; filename="cat.png"\r\n'
        b"Content-Type: image/png\r\n"
        b"Content-Transfer-Encoding: 8bit\r\n"
        b"\r\n"
    )


def test_build_header_treats_negative_length_as_unknown() -> None:
    header = build_header("blob", "binary", StubPayload(length=-1))

    assert b"Content-Length" not in header


def test_build_header_encodes_utf8() -> None:
    header = build_header("café", "binary", TextPayload("x"))

    assert 'name="café"'.encode("utf-8") in header


def test_only_first_part_boundary_lacks_line_break() -> None:
    encoder = MultipartBodyEncoder("sep")
    for index in range(4):
        encoder.add_part(f"f{index}", TextPayload(str(index)))

    boundaries = [part.boundary_bytes for part in encoder.parts]
    assert not boundaries[0].startswith(b"\r\n")
    assert all(boundary.startswith(b"\r\n--sep\r\n") for boundary in boundaries[1:])


def test_length_sums_parts_and_footer() -> None:
    encoder = MultipartBodyEncoder("sum")
    payloads = [
        BytesPayload("application/octet-stream", b"\x00" * 17, file_name="zeros.bin"),
        TextPayload("café"),
        BytesPayload("application/json", b"{}"),
    ]
    for index, payload in enumerate(payloads):
        encoder.add_part(f"p{index}", payload)

    expected = sum(
        len(part.boundary_bytes) + len(part.header_bytes) + part.payload.length() for part in encoder.parts
    ) + len(encoder.footer)
    assert encoder.length() == expected


def test_declared_length_matches_written_bytes(sink: RecordingSink) -> None:
    encoder = MultipartBodyEncoder()
    encoder.add_part("title", TextPayload("A title"))
    encoder.add_part("upload", BytesPayload("image/png", b"\x89PNG" * 100, file_name="a.png"), "base64")

    encoder.write_to(sink)

    assert len(sink.data) == encoder.length()
    assert sink.data.endswith(encoder.footer)
    assert sink.data.count(encoder.footer) == 1


@pytest.mark.parametrize("unknown_index", [0, 1, 2])
def test_unknown_length_is_sticky(unknown_index: int) -> None:
    encoder = MultipartBodyEncoder("u")
    for index in range(3):
        if index == unknown_index:
            encoder.add_part(f"p{index}", StreamPayload([b"abc"]))
        else:
            encoder.add_part(f"p{index}", TextPayload("known"))

    assert encoder.length() is None
    encoder.add_part("late", TextPayload("still known"))
    assert encoder.length() is None


def test_negative_payload_length_counts_as_unknown() -> None:
    encoder = MultipartBodyEncoder("neg")
    encoder.add_part("legacy", StubPayload(b"data", length=-1))

    assert encoder.length() is None


def test_unknown_length_body_still_streams(sink: RecordingSink) -> None:
    encoder = MultipartBodyEncoder("s")
    encoder.add_part("stream", StreamPayload(io.BytesIO(b"streamed bytes"), "text/plain"))

    encoder.write_to(sink)

    assert sink.data == (
        b"--s\r\n"
        b'Content-Disposition: form-data; name="stream"\r\n'
        b"Content-Type: text/plain\r\n"
        b"Content-Transfer-Encoding: binary\r\n"
        b"\r\n"
        b"streamed bytes"
        b"\r\n--s--\r\n"
    )


def test_write_order_is_boundary_header_payload_footer(sink: RecordingSink) -> None:
    encoder = MultipartBodyEncoder("o")
    encoder.add_part("a", StubPayload(b"AAA", chunks=[b"A", b"AA"]))
    encoder.add_part("b", StubPayload(b"B"))

    encoder.write_to(sink)

    first, second = encoder.parts
    assert sink.writes == [
        first.boundary_bytes,
        first.header_bytes,
        b"A",
        b"AA",
        second.boundary_bytes,
        second.header_bytes,
        b"B",
        encoder.footer,
    ]


@pytest.mark.parametrize(
    ("name", "payload_factory", "kwargs"),
    [
        (None, lambda: TextPayload("x"), {}),
        ("", lambda: TextPayload("x"), {}),
        ("field", lambda: None, {}),
        ("field", lambda: TextPayload("x"), {"transfer_encoding": None}),
    ],
)
def test_add_part_rejects_missing_arguments_without_mutation(name, payload_factory, kwargs) -> None:
    encoder = MultipartBodyEncoder("v")
    encoder.add_part("ok", TextPayload("fine"))
    before = encoder.length()

    with pytest.raises(InvalidPartError):
        encoder.add_part(name, payload_factory(), **kwargs)

    assert encoder.part_count() == 1
    assert encoder.length() == before


def test_add_part_failing_payload_leaves_encoder_unchanged(tmp_path: Path) -> None:
    encoder = MultipartBodyEncoder("v")
    encoder.add_part("ok", TextPayload("x"))
    before = encoder.length()

    with pytest.raises(OSError):
        encoder.add_part("gone", FilePayload(tmp_path / "missing.bin"))

    assert encoder.part_count() == 1
    assert encoder.length() == before
    assert len(encoder.to_bytes()) == encoder.length()


def test_invalid_part_error_is_value_error() -> None:
    with pytest.raises(ValueError, match="name"):
        MultipartBodyEncoder().add_part(None, TextPayload("x"))  # type: ignore[arg-type]


def test_part_bytes_are_built_once() -> None:
    payload = StubPayload(b"abc")
    encoder = MultipartBodyEncoder("once")
    encoder.add_part("p", payload)
    part = encoder.parts[0]

    header = part.header_bytes
    boundary = part.boundary_bytes
    calls_after_add = payload.length_calls
    encoder.to_bytes()
    encoder.to_bytes()

    assert part.header_bytes is header
    assert part.boundary_bytes is boundary
    assert part.size() == len(boundary) + len(header) + 3
    assert payload.length_calls == calls_after_add + 1


def test_repeated_writes_are_identical() -> None:
    encoder = MultipartBodyEncoder("r")
    encoder.add_part("a", TextPayload("one"))
    encoder.add_part("b", BytesPayload("application/octet-stream", b"\x01\x02"))

    assert encoder.to_bytes() == encoder.to_bytes()


def test_sink_failure_propagates_unchanged() -> None:
    encoder = MultipartBodyEncoder("f")
    encoder.add_part("a", TextPayload("data"))
    failing = FailingSink(fail_after=2)

    with pytest.raises(OSError, match="disk full"):
        encoder.write_to(failing)

    assert failing.writes == [encoder.parts[0].boundary_bytes, encoder.parts[0].header_bytes]


def test_payload_failure_propagates_unchanged(sink: RecordingSink) -> None:
    class ExplodingPayload(StubPayload):
        def write_to(self, sink) -> None:
            raise OSError("read failed")

    encoder = MultipartBodyEncoder("x")
    encoder.add_part("boom", ExplodingPayload(b"abc"))

    with pytest.raises(OSError, match="read failed"):
        encoder.write_to(sink)
    assert encoder.footer not in sink.data


def test_encoded_parts_render_each_part() -> None:
    encoder = MultipartBodyEncoder("ep")
    encoder.add_part("first", TextPayload("1"))
    encoder.add_part("second", TextPayload("2"))

    rendered = encoder.encoded_parts()

    assert len(rendered) == 2
    assert rendered[0].startswith(b"--ep\r\n")
    assert rendered[0].endswith(b"\r\n\r\n1")
    assert rendered[1].startswith(b"\r\n--ep\r\n")
    assert b"".join(rendered) + encoder.footer == encoder.to_bytes()


def test_request_headers_report_length_or_chunked() -> None:
    known = MultipartBodyEncoder("h")
    known.add_part("a", TextPayload("x"))
    unknown = MultipartBodyEncoder("h")
    unknown.add_part("a", StreamPayload([b"x"]))

    assert known.request_headers() == {
        "Content-Type": "multipart/form-data; boundary=h",
        "Content-Length": str(known.length()),
    }
    assert unknown.request_headers() == {
        "Content-Type": "multipart/form-data; boundary=h",
        "Transfer-Encoding": "chunked",
    }


def test_encoder_nests_as_payload() -> None:
    inner = MultipartBodyEncoder("inner")
    inner.add_part("leaf", TextPayload("leaf"))
    outer = MultipartBodyEncoder("outer")

    outer.add_part("nested", inner)

    header = outer.parts[0].header_bytes
    assert b"Content-Type: multipart/form-data; boundary=inner" in header
    assert f"Content-Length: {inner.length()}".encode() in header
    assert b"filename" not in header
    assert outer.length() == len(outer.to_bytes())


def test_len_and_repr() -> None:
    encoder = MultipartBodyEncoder("rep")
    encoder.add_part("a", TextPayload("x"))

    assert len(encoder) == 1
    assert "boundary='rep'" in repr(encoder)


def test_add_part_logs_unknown_length(caplog: LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="formstream.multipart")
    encoder = MultipartBodyEncoder("log")

    encoder.add_part("stream", StreamPayload([b"x"]))

    assert any("unknown length" in record.getMessage() for record in caplog.records)
