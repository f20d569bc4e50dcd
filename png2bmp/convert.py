"""PNG to BMP conversion entry points"""

import asyncio
import logging
import mimetypes
from os.path import basename, dirname, join
from typing import NamedTuple

from .bmp import BMP_MIME_TYPE, PixelBuffer, create_bmp
from .errors import ConversionError, DecodeFailure, UnsupportedFormat
from .lib import decode_png

logger = logging.getLogger(__name__)

PNG_MIME_TYPES = ("image/png", "image/x-png")
DEFAULT_MAX_CONCURRENCY = 4


class SuccessfullyConvertedFile(NamedTuple):
    """A converted file and its BMP bytes"""

    name: str
    data: bytes
    mime_type: str = BMP_MIME_TYPE


class FailedConvertedFile(NamedTuple):
    """A file that could not be converted, with the reason"""

    name: str
    error: str


def is_png_mime_type(mime_type):
    """Check that a format tag designates a PNG"""
    if not mime_type:
        return False
    return mime_type.split(";")[0].strip().lower() in PNG_MIME_TYPES


def bmp_name(source_name):
    """Derive the output name: a trailing .png becomes .bmp, else .bmp is appended"""
    if source_name.lower().endswith(".png"):
        return source_name[: -len(".png")] + ".bmp"
    return source_name + ".bmp"


def decode(source_bytes, decoder=decode_png) -> PixelBuffer:
    """Run the decoder, reporting any rejection as a DecodeFailure"""
    try:
        pixels = decoder(source_bytes)
        return PixelBuffer(pixels.width, pixels.height, bytes(pixels.data))
    except ConversionError:
        raise
    except Exception as e:
        raise DecodeFailure(f"{type(e).__name__}: {e}") from e


def convert(source_bytes, source_mime_type, decoder=decode_png):
    """Convert PNG bytes to BMP bytes, raising a ConversionError on failure"""
    if not is_png_mime_type(source_mime_type):
        raise UnsupportedFormat(
            f"Only PNG files are supported (got {source_mime_type!r})"
        )
    pixels = decode(source_bytes, decoder)
    return create_bmp(pixels)


def convert_png_to_bmp(source_bytes, source_mime_type, source_name, decoder=decode_png):
    """Convert one PNG file.

    Returns a SuccessfullyConvertedFile holding the BMP bytes, or a
    FailedConvertedFile holding the error message. Never raises a
    ConversionError.
    """
    name = bmp_name(source_name)
    logger.info("Converting %s", source_name)
    try:
        data = convert(source_bytes, source_mime_type, decoder)
    except ConversionError as e:
        logger.warning("Conversion of %s failed: %s", source_name, e)
        return FailedConvertedFile(name, str(e))
    logger.info("Converted %s to %s (%d bytes)", source_name, name, len(data))
    return SuccessfullyConvertedFile(name, data)


async def convert_async(source_bytes, source_mime_type, source_name, decoder=decode_png):
    """Awaitable convert_png_to_bmp, run in a worker thread"""
    return await asyncio.to_thread(
        convert_png_to_bmp, source_bytes, source_mime_type, source_name, decoder
    )


async def convert_batch(
    sources, max_concurrency=DEFAULT_MAX_CONCURRENCY, decoder=decode_png
):
    """Convert (bytes, mime type, name) sources, at most max_concurrency at a time.

    Results are returned in input order, one per source.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")
    semaphore = asyncio.Semaphore(max_concurrency)

    async def bounded(source_bytes, source_mime_type, source_name):
        async with semaphore:
            return await convert_async(
                source_bytes, source_mime_type, source_name, decoder
            )

    return list(await asyncio.gather(*(bounded(*source) for source in sources)))


def read_source(filename):
    """Read a file from disk as a (bytes, mime type, name) source"""
    mime_type, _ = mimetypes.guess_type(filename)
    with open(filename, "rb") as f:
        data = f.read()
    return data, mime_type or "application/octet-stream", basename(filename)


def convert_files(filenames, output_dir=None, max_concurrency=DEFAULT_MAX_CONCURRENCY):
    """Convert files on disk and write each BMP next to its source or into output_dir"""
    results = [None] * len(filenames)
    pending = []
    for i, filename in enumerate(filenames):
        try:
            pending.append((i, read_source(filename)))
        except OSError as e:
            logger.warning("Cannot read %s: %s", filename, e)
            results[i] = FailedConvertedFile(bmp_name(basename(filename)), str(e))
    converted = asyncio.run(
        convert_batch([source for _, source in pending], max_concurrency)
    )
    for (i, _), result in zip(pending, converted):
        if isinstance(result, SuccessfullyConvertedFile):
            target_dir = output_dir if output_dir is not None else dirname(filenames[i])
            path = join(target_dir, result.name)
            try:
                with open(path, "wb") as f:
                    f.write(result.data)
            except OSError as e:
                logger.warning("Cannot write %s: %s", path, e)
                result = FailedConvertedFile(result.name, str(e))
            else:
                logger.info("Wrote %s", path)
        results[i] = result
    return results
