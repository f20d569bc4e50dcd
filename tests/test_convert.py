import asyncio
import zlib

import pytest

from png2bmp import (
    PixelBuffer,
    SuccessfullyConvertedFile,
    FailedConvertedFile,
    bmp_name,
    convert,
    convert_png_to_bmp,
    convert_async,
    convert_batch,
    convert_files,
    create_bmp,
    encode_png,
    DecodeFailure,
    UnsupportedFormat,
)
from png2bmp.lib import (
    build_png,
    create_chunk,
    create_ihdr_chunk,
    create_iend_chunk,
)

PIXELS = PixelBuffer(2, 3, bytes(range(24)))


class RecordingDecoder:
    def __init__(self, pixels=PIXELS):
        self.pixels = pixels
        self.calls = []

    def __call__(self, data):
        self.calls.append(data)
        return self.pixels


@pytest.mark.parametrize(
    "name,expected",
    [
        ("photo.png", "photo.bmp"),
        ("archive.PNG", "archive.bmp"),
        ("noext", "noext.bmp"),
        ("my.png.backup", "my.png.backup.bmp"),
        ("a.png.png", "a.png.bmp"),
    ],
)
def test_bmp_name(name, expected):
    assert bmp_name(name) == expected


def test_convert_png():
    result = convert_png_to_bmp(encode_png(PIXELS), "image/png", "photo.png")
    assert isinstance(result, SuccessfullyConvertedFile)
    assert result.name == "photo.bmp"
    assert result.mime_type == "image/bmp"
    assert result.data == create_bmp(PIXELS)


def test_result_holds_bmp_not_source():
    source = encode_png(PIXELS)
    result = convert_png_to_bmp(source, "image/png", "photo.png")
    assert result.data != source
    assert result.data[0:2] == b"BM"
    assert len(result.data) == 54 + 2 * 3 * 4


def test_injected_decoder():
    decoder = RecordingDecoder()
    result = convert_png_to_bmp(b"anything", "image/png", "x.png", decoder)
    assert decoder.calls == [b"anything"]
    assert result == SuccessfullyConvertedFile("x.bmp", create_bmp(PIXELS))


@pytest.mark.parametrize("mime_type", ["image/png", "IMAGE/PNG", "image/png; q=1"])
def test_png_mime_types(mime_type):
    result = convert_png_to_bmp(b"", mime_type, "x.png", RecordingDecoder())
    assert isinstance(result, SuccessfullyConvertedFile)


@pytest.mark.parametrize("mime_type", ["image/jpeg", "image/bmp", "", None])
def test_unsupported_format(mime_type):
    decoder = RecordingDecoder()
    with pytest.raises(UnsupportedFormat):
        convert(b"", mime_type, decoder)
    result = convert_png_to_bmp(b"", mime_type, "photo.jpg", decoder)
    assert isinstance(result, FailedConvertedFile)
    assert result.name == "photo.jpg.bmp"
    assert "PNG" in result.error
    assert decoder.calls == []


def test_decode_failure():
    result = convert_png_to_bmp(b"not a png", "image/png", "broken.png")
    assert isinstance(result, FailedConvertedFile)
    assert result.name == "broken.bmp"
    assert result.error == "File is not a PNG"


def test_decoder_value_error():
    def decoder(_data):
        raise ValueError("bad data")

    with pytest.raises(DecodeFailure):
        convert(b"", "image/png", decoder)


def test_invalid_dimensions():
    decoder = RecordingDecoder(PixelBuffer(0, 3, b""))
    result = convert_png_to_bmp(b"", "image/png", "empty.png", decoder)
    assert isinstance(result, FailedConvertedFile)
    assert "Invalid dimensions" in result.error


def test_convert_is_deterministic():
    source = encode_png(PIXELS)
    assert convert(source, "image/png") == convert(source, "image/png")


def test_convert_async():
    result = asyncio.run(convert_async(encode_png(PIXELS), "image/png", "a.png"))
    assert result == SuccessfullyConvertedFile("a.bmp", create_bmp(PIXELS))


def test_convert_batch_keeps_order():
    other = PixelBuffer(1, 1, bytes([1, 2, 3, 4]))
    sources = [
        (encode_png(PIXELS), "image/png", "first.png"),
        (b"", "image/jpeg", "second.jpg"),
        (b"broken", "image/png", "third.png"),
        (encode_png(other), "image/png", "fourth.png"),
    ]
    results = asyncio.run(convert_batch(sources, max_concurrency=2))
    assert [result.name for result in results] == [
        "first.bmp",
        "second.jpg.bmp",
        "third.bmp",
        "fourth.bmp",
    ]
    assert [type(result) for result in results] == [
        SuccessfullyConvertedFile,
        FailedConvertedFile,
        FailedConvertedFile,
        SuccessfullyConvertedFile,
    ]
    assert results[3].data == create_bmp(other)


def test_convert_batch_empty():
    assert asyncio.run(convert_batch([])) == []


def test_convert_batch_bad_concurrency():
    with pytest.raises(ValueError):
        asyncio.run(convert_batch([], max_concurrency=0))


def test_convert_files(tmp_path):
    png = tmp_path / "image.png"
    png.write_bytes(encode_png(PIXELS))
    text = tmp_path / "notes.txt"
    text.write_text("hello")
    missing = tmp_path / "missing.png"

    results = convert_files([str(png), str(text), str(missing)])

    assert isinstance(results[0], SuccessfullyConvertedFile)
    assert (tmp_path / "image.bmp").read_bytes() == create_bmp(PIXELS)
    assert isinstance(results[1], FailedConvertedFile)
    assert results[1].name == "notes.txt.bmp"
    assert isinstance(results[2], FailedConvertedFile)
    assert results[2].name == "missing.bmp"
    assert not (tmp_path / "notes.txt.bmp").exists()


def test_convert_files_output_dir(tmp_path):
    png = tmp_path / "image.png"
    png.write_bytes(encode_png(PIXELS))
    output_dir = tmp_path / "out"
    output_dir.mkdir()

    results = convert_files([str(png)], output_dir=str(output_dir))

    assert results == [SuccessfullyConvertedFile("image.bmp", create_bmp(PIXELS))]
    assert (output_dir / "image.bmp").exists()
    assert not (tmp_path / "image.bmp").exists()


def test_pil_png_to_bmp():
    from io import BytesIO
    from PIL import Image

    img = Image.new("RGB", (9, 4))
    img.frombytes(bytes((i * 11) % 256 for i in range(9 * 4 * 3)))
    source = BytesIO()
    img.save(source, format="PNG")

    result = convert_png_to_bmp(source.getvalue(), "image/png", "pil.png")

    bmp = Image.open(BytesIO(result.data))
    assert bmp.size == (9, 4)
    assert bmp.convert("RGB").tobytes() == img.tobytes()


def oversized_interlaced_png():
    return build_png(
        [
            create_ihdr_chunk(0x7FFFFFFF, 0x7FFFFFFF, interlace_method=1),
            create_chunk(b"IDAT", zlib.compress(b"\x00")),
            create_iend_chunk(),
        ]
    )


def test_oversized_interlaced_png():
    result = convert_png_to_bmp(oversized_interlaced_png(), "image/png", "huge.png")
    assert isinstance(result, FailedConvertedFile)
    assert result.name == "huge.bmp"


def test_decoder_os_error():
    def decoder(_data):
        raise OSError("backend unavailable")

    with pytest.raises(DecodeFailure, match="backend unavailable"):
        convert(b"", "image/png", decoder)
    result = convert_png_to_bmp(b"", "image/png", "x.png", decoder)
    assert result == FailedConvertedFile("x.bmp", "OSError: backend unavailable")


def test_convert_batch_survives_bad_files():
    sources = [
        (encode_png(PIXELS), "image/png", "good.png"),
        (oversized_interlaced_png(), "image/png", "huge.png"),
    ]
    results = asyncio.run(convert_batch(sources))
    assert results[0] == SuccessfullyConvertedFile("good.bmp", create_bmp(PIXELS))
    assert isinstance(results[1], FailedConvertedFile)


def test_convert_batch_survives_failing_decoder():
    def decoder(data):
        if data == b"bad":
            raise OSError("backend unavailable")
        return PIXELS

    sources = [
        (b"good", "image/png", "first.png"),
        (b"bad", "image/png", "second.png"),
        (b"good", "image/png", "third.png"),
    ]
    results = asyncio.run(convert_batch(sources, decoder=decoder))
    assert [type(result) for result in results] == [
        SuccessfullyConvertedFile,
        FailedConvertedFile,
        SuccessfullyConvertedFile,
    ]


def test_convert_files_missing_output_dir(tmp_path):
    first = tmp_path / "first.png"
    first.write_bytes(encode_png(PIXELS))
    second = tmp_path / "second.png"
    second.write_bytes(encode_png(PIXELS))

    results = convert_files(
        [str(first), str(second)], output_dir=str(tmp_path / "missing")
    )

    assert [result.name for result in results] == ["first.bmp", "second.bmp"]
    assert all(isinstance(result, FailedConvertedFile) for result in results)
    assert not (tmp_path / "missing").exists()
