"""a tiny bmp encoder (32-bit BGRA, bottom-up, uncompressed)"""

from typing import NamedTuple

from .errors import InvalidDimensions, SizeOverflow

FILE_HEADER_SIZE = 14
INFO_HEADER_SIZE = 40
PIXEL_DATA_OFFSET = FILE_HEADER_SIZE + INFO_HEADER_SIZE
BITS_PER_PIXEL = 32
BYTES_PER_PIXEL = BITS_PER_PIXEL // 8
DEFAULT_PIXELS_PER_METER = 2835  # 72 DPI
MAX_UINT32 = 0xFFFFFFFF
MAX_INT32 = 0x7FFFFFFF
BMP_MIME_TYPE = "image/bmp"


class PixelBuffer(NamedTuple):
    """Decoded image: RGBA bytes, row-major, row 0 is the top row"""

    width: int
    height: int
    data: bytes


def check_dimensions(width, height, data_length=None):
    """Raise if the dimensions cannot be encoded"""
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Invalid dimensions: {width}x{height}")
    if width > MAX_INT32 or height > MAX_INT32:
        raise SizeOverflow(f"Dimensions {width}x{height} do not fit in int32")
    expected = width * height * BYTES_PER_PIXEL
    if PIXEL_DATA_OFFSET + expected > MAX_UINT32:
        raise SizeOverflow(f"Image {width}x{height} is too large for a BMP file")
    if data_length is not None and data_length != expected:
        raise InvalidDimensions(
            f"Expected {expected} bytes of RGBA data for {width}x{height}, "
            f"got {data_length}"
        )


def create_file_header(pixel_data_length):
    """Create the bitmap file header (14 bytes)"""
    size = PIXEL_DATA_OFFSET + pixel_data_length
    if size > MAX_UINT32:
        raise SizeOverflow(f"File size {size} does not fit in the BMP header")
    header = bytearray()
    header.extend(b"BM")  # Signature
    header.extend(size.to_bytes(4, byteorder="little"))  # File size
    header.extend(b"\x00\x00")  # Reserved
    header.extend(b"\x00\x00")  # Reserved
    header.extend(PIXEL_DATA_OFFSET.to_bytes(4, byteorder="little"))  # Data offset
    return bytes(header)


def create_info_header(width, height, phy=None):
    """Create the bitmap information header (40 bytes)"""
    if phy is None:
        x_pixels_per_meter = DEFAULT_PIXELS_PER_METER
        y_pixels_per_meter = DEFAULT_PIXELS_PER_METER
    else:
        x_pixels_per_meter = phy[0]
        y_pixels_per_meter = phy[1]
    header = bytearray()
    header.extend(INFO_HEADER_SIZE.to_bytes(4, byteorder="little"))  # Header size
    header.extend(width.to_bytes(4, byteorder="little", signed=True))  # Image width
    header.extend(height.to_bytes(4, byteorder="little", signed=True))  # Image height
    header.extend(b"\x01\x00")  # Planes
    header.extend(BITS_PER_PIXEL.to_bytes(2, byteorder="little"))  # Bits per pixel
    header.extend(b"\x00\x00\x00\x00")  # Compression (none)
    header.extend(
        (width * height * BYTES_PER_PIXEL).to_bytes(4, byteorder="little")
    )  # Image size
    header.extend(
        x_pixels_per_meter.to_bytes(4, byteorder="little", signed=True)
    )  # X pixels per meter
    header.extend(
        y_pixels_per_meter.to_bytes(4, byteorder="little", signed=True)
    )  # Y pixels per meter
    header.extend(b"\x00\x00\x00\x00")  # Number of colors used
    header.extend(b"\x00\x00\x00\x00")  # Number of important colors
    return bytes(header)


def convert_to_bgra(pixels: PixelBuffer):
    """Swap RGBA to BGRA and flip the rows (BMP is stored bottom-up)"""
    width, height, data = pixels
    row_length = width * BYTES_PER_PIXEL
    output = bytearray(row_length * height)
    for y in range(height):
        source_y = height - 1 - y
        source_start = source_y * row_length
        target_start = y * row_length
        row = data[source_start : source_start + row_length]
        output[target_start + 0 : target_start + row_length : 4] = row[2::4]  # B
        output[target_start + 1 : target_start + row_length : 4] = row[1::4]  # G
        output[target_start + 2 : target_start + row_length : 4] = row[0::4]  # R
        output[target_start + 3 : target_start + row_length : 4] = row[3::4]  # A
    return bytes(output)


def create_bmp(pixels: PixelBuffer, phy=None):
    """Encode a PixelBuffer as a complete BMP file"""
    width, height, data = pixels
    check_dimensions(width, height, len(data))
    pixel_data_length = width * height * BYTES_PER_PIXEL
    bmp_data = bytearray()
    bmp_data.extend(create_file_header(pixel_data_length))
    bmp_data.extend(create_info_header(width, height, phy))
    bmp_data.extend(convert_to_bgra(pixels))
    return bytes(bmp_data)


def write_bmp(pixels: PixelBuffer, filename, phy=None):
    """Encode a PixelBuffer and write it to filename"""
    bmp_data = create_bmp(pixels, phy)
    with open(filename, "wb") as f:
        f.write(bmp_data)
    return len(bmp_data)
