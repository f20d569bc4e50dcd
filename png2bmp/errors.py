"""conversion errors"""


class ConversionError(Exception):
    """Base class of every error raised while converting a file"""


class UnsupportedFormat(ConversionError):
    """The source is not a PNG"""


class DecodeFailure(ConversionError):
    """The decoder rejected the source bytes"""


class InvalidDimensions(ConversionError):
    """Width or height is not positive, or the pixel data does not match them"""


class SizeOverflow(ConversionError):
    """The image does not fit in the 32-bit size fields of a BMP"""
