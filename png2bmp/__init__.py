"""main module"""

from .bmp import (
    PixelBuffer,  # noqa: F401
    create_file_header,  # noqa: F401
    create_info_header,  # noqa: F401
    convert_to_bgra,  # noqa: F401
    create_bmp,  # noqa: F401
    write_bmp,  # noqa: F401
)
from .lib import (
    split_png_chunks,  # noqa: F401
    read_file,  # noqa: F401
    decode_ihdr,  # noqa: F401
    decode_phy,  # noqa: F401
    decode_png,  # noqa: F401
    encode_png,  # noqa: F401
    extract_idat,  # noqa: F401
    parse_idat,  # noqa: F401
    to_rgba,  # noqa: F401
)
from .convert import (
    SuccessfullyConvertedFile,  # noqa: F401
    FailedConvertedFile,  # noqa: F401
    bmp_name,  # noqa: F401
    convert,  # noqa: F401
    convert_png_to_bmp,  # noqa: F401
    convert_async,  # noqa: F401
    convert_batch,  # noqa: F401
    convert_files,  # noqa: F401
)
from .errors import (
    ConversionError,  # noqa: F401
    UnsupportedFormat,  # noqa: F401
    DecodeFailure,  # noqa: F401
    InvalidDimensions,  # noqa: F401
    SizeOverflow,  # noqa: F401
)
from .cli import (
    cli_main,  # noqa: F401
    CLI,  # noqa: F401
)
