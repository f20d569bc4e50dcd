"""png decoding library"""

import logging
from os import fstat
import zlib

from .bmp import PixelBuffer
from .errors import DecodeFailure

logger = logging.getLogger(__name__)

ERROR_CODE = {
    "WRONG_LENGTH": "Wrong length",
    "EOF": "End of file",
    "WRONG_CRC": "Wrong CRC",
    "WRONG_TYPE": "Wrong type",
}

CHUNKS_TYPES = {
    b"IHDR": "Image header",
    b"PLTE": "Palette",
    b"IDAT": "Image data",
    b"IEND": "Image trailer",
    b"eXIf": "Exif data",
    b"cHRM": "Primary chromaticities",
    b"gAMA": "Image gamma",
    b"iCCP": "Embedded ICC profile",
    b"sBIT": "Significant bits",
    b"sRGB": "Standard RGB color space",
    b"bKGD": "Background color",
    b"hIST": "Image histogram",
    b"tRNS": "Transparency",
    b"pHYs": "Physical pixel dimensions",
    b"sPLT": "Suggested palette",
    b"tIME": "Image last-modification time",
    b"iTXt": "International textual data",
    b"tEXt": "Textual data",
    b"zTXt": "Compressed textual data",
}

CRITICAL_CHUNKS = (b"IHDR", b"PLTE", b"IDAT", b"IEND")

# Adam7 pattern: (x_start, y_start, x_step, y_step)
ADAM7_PASSES = [
    (0, 0, 8, 8),  # pass 1
    (4, 0, 8, 8),  # pass 2
    (0, 4, 4, 8),  # pass 3
    (2, 0, 4, 4),  # pass 4
    (0, 2, 2, 4),  # pass 5
    (1, 0, 2, 2),  # pass 6
    (0, 1, 1, 2),  # pass 7
]

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

# color type -> samples per pixel
SAMPLES_PER_PIXEL = {
    0: 1,  # Greyscale
    2: 3,  # RGB
    3: 1,  # Palette
    4: 2,  # Greyscale + alpha
    6: 4,  # RGBA
}


class ReaderHelper:
    """Helper class to read data from a file or buffer"""

    def __init__(self, fp):
        self.is_file = hasattr(fp, "read")
        self.fp = fp
        self.offset = 0

    def read(self, read_len):
        """Read data from file or buffer"""
        if self.is_file:
            return self.fp.read(read_len)
        data = self.fp[self.offset : self.offset + read_len]
        self.offset += read_len
        return bytes(data)

    def size(self):
        """Get the size of the file or buffer"""
        if self.is_file:
            return fstat(self.fp.fileno()).st_size
        return len(self.fp)


def read_chunk(file: ReaderHelper, total_size):
    """Read a chunk from a file"""
    read = file.read(4)
    errors = []
    if len(read) < 4:
        errors.append(ERROR_CODE["EOF"])
        return None, None, None, None, errors
    data_length = int.from_bytes(read, byteorder="big")
    to_read = data_length
    if data_length > total_size:
        to_read = max(total_size - 3 * 4, 0)
        errors.append(ERROR_CODE["WRONG_LENGTH"])
    chunk_type = file.read(4)
    if chunk_type not in CHUNKS_TYPES:
        errors.append(ERROR_CODE["WRONG_TYPE"])
    data = file.read(to_read)
    crc = file.read(4)
    if crc != calculate_crc(chunk_type, data):
        errors.append(ERROR_CODE["WRONG_CRC"])
    return data_length, chunk_type, data, crc, errors


def try_dec(type_chunk):
    """Try to decode the type of chunk"""
    if type_chunk in CHUNKS_TYPES:
        return type_chunk.decode("utf-8")
    return "????"


# chunk is a list of 5 elements
# [length, chunk_type, data, crc, errors]


def get_length_of_chunk(one_chunk):
    """Get the length of a chunk"""
    return one_chunk[0]


def get_type_of_chunk(one_chunk):
    """Get the type of a chunk"""
    return one_chunk[1]


def get_data_of_chunk(one_chunk):
    """Get the data of a chunk"""
    return one_chunk[2]


def get_crc_of_chunk(one_chunk):
    """Get the CRC of a chunk"""
    return one_chunk[3]


def get_errors_of_chunk(one_chunk):
    """Get the errors found while reading a chunk"""
    return one_chunk[4]


def get_by_type(chunks, current_type=b"IDAT"):
    """Get all chunks of a specific type"""
    return [
        one_chunk
        for one_chunk in chunks
        if get_type_of_chunk(one_chunk) == current_type
    ]


def extract_idat(chunks):
    """Extract IDAT chunks from a list of chunks"""
    return [get_data_of_chunk(one_chunk) for one_chunk in get_by_type(chunks, b"IDAT")]


def decode_phy(chunk):
    """Decode the pHYs chunk data"""
    phy_chunk_data = get_data_of_chunk(chunk)
    x_pixels_per_unit = int.from_bytes(phy_chunk_data[0:4], byteorder="big")
    y_pixels_per_unit = int.from_bytes(phy_chunk_data[4:8], byteorder="big")
    unit_specifier = int.from_bytes(phy_chunk_data[8:9], byteorder="big")
    if unit_specifier == 0:
        # Units are unspecified, using default
        x_pixels_per_unit = 2835
        y_pixels_per_unit = 2835
    return x_pixels_per_unit, y_pixels_per_unit, unit_specifier


def read_file(filename):
    """Read a PNG file into chunks"""
    with open(filename, "rb") as fp:
        return split_png_chunks(ReaderHelper(fp))


def split_png_chunks(fp):
    """Split PNG chunks from a file or buffer"""
    if not isinstance(fp, ReaderHelper):
        fp = ReaderHelper(fp)
    size = fp.size()
    logger.debug("Reading (%d bytes)", size)
    remaining_size = size
    magic_len = len(PNG_MAGIC)
    signature = fp.read(magic_len)
    remaining_size -= magic_len
    if signature != PNG_MAGIC:
        raise DecodeFailure("File is not a PNG")
    chunks = []
    while remaining_size > 0:
        length, chunk_type, data, crc, errors = read_chunk(fp, remaining_size)
        if ERROR_CODE["EOF"] in errors:
            break
        remaining_size -= len(data) + 4 + len(chunk_type) + len(crc)
        chunk = [length, chunk_type, data, crc, errors]
        if errors:
            logger.warning(
                "Chunk %d (%s): %s", len(chunks), try_dec(chunk_type), errors
            )
        chunks.append(chunk)
        if chunk_type == b"IEND":
            break
    return chunks


def format_chunks(chunks, start_index=0):
    """Format chunks as one line of text each"""
    if len(chunks) == 0:
        return []
    max_str = max(len(f"{get_length_of_chunk(one_chunk)}") for one_chunk in chunks)
    lines = []
    for i, one_chunk in enumerate(chunks):
        length_part = get_length_of_chunk(one_chunk)
        data_part = get_data_of_chunk(one_chunk)
        crc_part = get_crc_of_chunk(one_chunk)
        type_part = get_type_of_chunk(one_chunk)
        is_correct = crc_part == calculate_crc(type_part, data_part)
        data_display = data_part[:5] + b"..." if len(data_part) > 10 else data_part
        errors = ""
        if len(get_errors_of_chunk(one_chunk)) > 0:
            errors = f"Errors: {get_errors_of_chunk(one_chunk)}"
        lines.append(
            f"Chunk {start_index + i:2d}: Length={length_part:{max_str}d}, Type={try_dec(type_part)}, CRC={crc_part.hex()} ({is_correct}), data={data_display} {errors}".rstrip()
        )
    return lines


def calculate_crc(chunk_type, data):
    """Calculate the CRC of a chunk"""
    i = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return i.to_bytes(4, "big")


def create_chunk(chunk_type, data):
    """Create a valid chunk"""
    return [len(data), chunk_type, data, calculate_crc(chunk_type, data), []]


def create_ihdr_chunk(width, height, bit_depth=8, color_type=6, interlace_method=0):
    """Create an IHDR chunk"""
    data = (
        width.to_bytes(4, byteorder="big")
        + height.to_bytes(4, byteorder="big")
        + bytes([bit_depth])
        + bytes([color_type])
        + b"\x00"  # Compression method
        + b"\x00"  # Filter method
        + bytes([interlace_method])
    )
    return create_chunk(b"IHDR", data)


def create_idat_chunk(raw_data, width, height, bpp=4):
    """Create an IDAT chunk from unfiltered pixel rows (filter type 0)"""
    scanline_length = width * bpp
    filtered = bytearray()
    for y in range(height):
        filtered.append(0)
        filtered.extend(raw_data[y * scanline_length : (y + 1) * scanline_length])
    return create_chunk(b"IDAT", zlib.compress(bytes(filtered)))


def create_iend_chunk():
    """Create an IEND chunk"""
    return create_chunk(b"IEND", b"")


def get_binary_chunk(chunk):
    """Get the binary representation of a chunk"""
    length_binary = get_length_of_chunk(chunk).to_bytes(4, byteorder="big")
    return (
        length_binary
        + get_type_of_chunk(chunk)
        + get_data_of_chunk(chunk)
        + get_crc_of_chunk(chunk)
    )


def build_png(chunks):
    """Build the bytes of a PNG file from its chunks"""
    return PNG_MAGIC + b"".join(get_binary_chunk(one_chunk) for one_chunk in chunks)


def encode_png(pixels: PixelBuffer):
    """Encode a PixelBuffer as a minimal RGBA PNG"""
    width, height, data = pixels
    return build_png(
        [
            create_ihdr_chunk(width, height),
            create_idat_chunk(data, width, height),
            create_iend_chunk(),
        ]
    )


def try_decompress(data):
    """Try to decompress data"""
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise DecodeFailure(f"Cannot decompress image data: {e}") from e


def decode_ihdr(data):
    """Decode IHDR chunk data"""
    if len(data) != 13:
        raise DecodeFailure(f"IHDR chunk has {len(data)} bytes, expected 13")
    width = int.from_bytes(data[0:4], byteorder="big")
    height = int.from_bytes(data[4:8], byteorder="big")
    bit_depth = data[8]
    color_type = data[9]
    compression_method = data[10]
    filter_method = data[11]
    interlace_method = data[12]
    return (
        width,
        height,
        bit_depth,
        color_type,
        compression_method,
        filter_method,
        interlace_method,
    )


def get_bytes_per_pixel(bit_depth, color_type):
    """Bytes per pixel of an 8-bit image"""
    if bit_depth != 8:
        raise DecodeFailure(f"Unsupported bit depth: {bit_depth}")
    if color_type not in SAMPLES_PER_PIXEL:
        raise DecodeFailure(f"Unsupported color type: {color_type}")
    return SAMPLES_PER_PIXEL[color_type]


def get_adam7_pass_sizes(width, height):
    """(width, height) of each non-empty Adam7 pass"""
    sizes = []
    for x_start, y_start, x_step, y_step in ADAM7_PASSES:
        pass_width = (width - x_start + x_step - 1) // x_step
        pass_height = (height - y_start + y_step - 1) // y_step
        if pass_width > 0 and pass_height > 0:
            sizes.append((pass_width, pass_height))
    return sizes


def calculate_decompressed_length(
    width, height, bit_depth, color_type, interlace_method=0
):
    """Calculate the total length of the decompressed image"""
    bytes_per_pixel = get_bytes_per_pixel(bit_depth, color_type)
    if interlace_method == 1:
        sizes = get_adam7_pass_sizes(width, height)
    else:
        sizes = [(width, height)]
    # Bytes per scanline include the filter byte
    return sum(
        ((pass_width * bytes_per_pixel) + 1) * pass_height
        for pass_width, pass_height in sizes
    )


def paeth_predictor(a, b, c):
    """Paeth predictor function used in PNG filtering.

    Args:
        a: Left pixel.
        b: Above pixel.
        c: Upper-left pixel.

    Returns:
        The predicted pixel value.
    """
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    elif pb <= pc:
        return b
    else:
        return c


def unfilter_scanlines(data, width, height, bpp):
    """Unfilter the scanlines of a PNG image."""
    scanline_length = width * bpp
    if len(data) < (scanline_length + 1) * height:
        raise DecodeFailure("Image data is truncated")
    result = bytearray()
    prev_line = bytearray(scanline_length)
    offset = 0

    for _ in range(height):
        filter_type = data[offset]
        offset += 1
        scanline = bytearray(data[offset : offset + scanline_length])
        offset += scanline_length

        if filter_type == 0:  # None
            pass
        elif filter_type == 1:  # Sub
            for i in range(bpp, len(scanline)):
                scanline[i] = (scanline[i] + scanline[i - bpp]) % 256
        elif filter_type == 2:  # Up
            for i, sc in enumerate(scanline):
                scanline[i] = (sc + prev_line[i]) % 256
        elif filter_type == 3:  # Average
            for i, sc in enumerate(scanline):
                left = scanline[i - bpp] if i >= bpp else 0
                up = prev_line[i]
                scanline[i] = (sc + ((left + up) // 2)) % 256
        elif filter_type == 4:  # Paeth
            for i, sc in enumerate(scanline):
                a = scanline[i - bpp] if i >= bpp else 0
                b = prev_line[i]
                c = prev_line[i - bpp] if i >= bpp else 0
                scanline[i] = (sc + paeth_predictor(a, b, c)) % 256
        else:
            raise DecodeFailure(f"Unknown filter type: {filter_type}")

        result.extend(scanline)
        prev_line = scanline

    return result


def deinterlace_adam7(data, width, height, bpp):
    """Deinterlace Adam7 interlaced PNG data."""
    img = bytearray(width * height * bpp)
    offset = 0

    for x_start, y_start, x_step, y_step in ADAM7_PASSES:
        pass_width = (width - x_start + x_step - 1) // x_step
        pass_height = (height - y_start + y_step - 1) // y_step
        if pass_width <= 0 or pass_height <= 0:
            continue

        row_bytes = pass_width * bpp
        scanline_len = (row_bytes + 1) * pass_height
        pass_data = data[offset : offset + scanline_len]
        offset += scanline_len

        unfiltered = unfilter_scanlines(pass_data, pass_width, pass_height, bpp)

        i = 0
        for y in range(pass_height):
            for x in range(pass_width):
                pixel_offset = (
                    (y_start + y * y_step) * width + (x_start + x * x_step)
                ) * bpp
                img[pixel_offset : pixel_offset + bpp] = unfiltered[i : i + bpp]
                i += bpp

    return img


def parse_idat(
    unzip_idat_data, width, height, bit_depth, color_type, interlace_method=0
):
    """Parse IDAT data and return pixel values."""
    bpp = get_bytes_per_pixel(bit_depth, color_type)
    if interlace_method not in (0, 1):
        raise DecodeFailure(f"Unsupported interlace method: {interlace_method}")
    # checked before any buffer of the claimed size is allocated
    expected = calculate_decompressed_length(
        width, height, bit_depth, color_type, interlace_method
    )
    if len(unzip_idat_data) < expected:
        raise DecodeFailure(
            f"Image data is truncated: {len(unzip_idat_data)} bytes "
            f"for {width}x{height}, expected {expected}"
        )

    if interlace_method == 0:
        raw = unfilter_scanlines(unzip_idat_data, width, height, bpp)
    else:
        raw = deinterlace_adam7(unzip_idat_data, width, height, bpp)

    return raw


def to_rgba(raw, color_type, palette=None, transparency=None):
    """Expand 8-bit pixel values of any color type to RGBA"""
    if color_type == 6:
        return bytes(raw)
    pixel_count = len(raw) // SAMPLES_PER_PIXEL[color_type]
    rgba = bytearray(pixel_count * 4)
    if color_type == 2:
        rgba[0::4] = raw[0::3]
        rgba[1::4] = raw[1::3]
        rgba[2::4] = raw[2::3]
        rgba[3::4] = b"\xff" * pixel_count
        if transparency is not None and len(transparency) >= 6:
            # tRNS for RGB holds one 16-bit sample per channel
            key = bytes(transparency[1:6:2])
            for i in range(pixel_count):
                if rgba[i * 4 : i * 4 + 3] == key:
                    rgba[i * 4 + 3] = 0
    elif color_type == 0:
        rgba[0::4] = raw
        rgba[1::4] = raw
        rgba[2::4] = raw
        rgba[3::4] = b"\xff" * pixel_count
        if transparency is not None and len(transparency) >= 2:
            key = transparency[1]
            for i, grey in enumerate(raw):
                if grey == key:
                    rgba[i * 4 + 3] = 0
    elif color_type == 4:
        rgba[0::4] = raw[0::2]
        rgba[1::4] = raw[0::2]
        rgba[2::4] = raw[0::2]
        rgba[3::4] = raw[1::2]
    elif color_type == 3:
        if not palette:
            raise DecodeFailure("Palette image without PLTE chunk")
        alphas = transparency or b""
        entries = len(palette) // 3
        lookup = [
            bytes(palette[i * 3 : i * 3 + 3])
            + bytes([alphas[i] if i < len(alphas) else 255])
            for i in range(entries)
        ]
        for i, index in enumerate(raw):
            if index >= entries:
                raise DecodeFailure(f"Palette index {index} out of range")
            rgba[i * 4 : i * 4 + 4] = lookup[index]
    else:
        raise DecodeFailure(f"Unsupported color type: {color_type}")
    return bytes(rgba)


def decode_chunks(chunks):
    """Decode split chunks into an RGBA PixelBuffer"""
    for one_chunk in chunks:
        if get_type_of_chunk(one_chunk) in CRITICAL_CHUNKS and get_errors_of_chunk(
            one_chunk
        ):
            raise DecodeFailure(
                f"Corrupt {try_dec(get_type_of_chunk(one_chunk))} chunk: "
                f"{get_errors_of_chunk(one_chunk)}"
            )
    if len(chunks) == 0 or get_type_of_chunk(chunks[0]) != b"IHDR":
        raise DecodeFailure("Missing IHDR chunk")
    (
        width,
        height,
        bit_depth,
        color_type,
        _,
        _,
        interlace_method,
    ) = decode_ihdr(get_data_of_chunk(chunks[0]))
    if width == 0 or height == 0:
        raise DecodeFailure(f"Zero-dimension image: {width}x{height}")
    idat = extract_idat(chunks)
    if len(idat) == 0:
        raise DecodeFailure("Missing IDAT chunk")
    data = try_decompress(b"".join(idat))
    raw = parse_idat(data, width, height, bit_depth, color_type, interlace_method)

    palette = None
    plte = get_by_type(chunks, b"PLTE")
    if plte:
        palette = get_data_of_chunk(plte[0])
    transparency = None
    trns = get_by_type(chunks, b"tRNS")
    if trns:
        transparency = get_data_of_chunk(trns[0])

    return PixelBuffer(width, height, to_rgba(raw, color_type, palette, transparency))


def decode_png(data):
    """Decode PNG bytes into an RGBA PixelBuffer"""
    return decode_chunks(split_png_chunks(ReaderHelper(data)))
