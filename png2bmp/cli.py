# /bin/env python3

import logging
from os.path import join, expanduser
import cmd2
from .lib import (
    format_chunks,
    get_by_type,
    get_data_of_chunk,
    get_type_of_chunk,
    decode_ihdr,
    decode_phy,
    read_file,
)
from .convert import (
    DEFAULT_MAX_CONCURRENCY,
    SuccessfullyConvertedFile,
    convert_files,
)
from .errors import ConversionError

PATH_HISTORY = join(expanduser("~"), ".png2bmp_history.dat")


class CLI(cmd2.Cmd):
    """png2bmp CLI"""

    def __init__(self):
        super().__init__(
            persistent_history_file=PATH_HISTORY,
        )
        self.prompt = "png2bmp> "
        self.chunks = []
        self.results = []
        self.max_concurrency = DEFAULT_MAX_CONCURRENCY
        self.output_dir = ""
        self.add_settable(
            cmd2.Settable(
                "max_concurrency",
                int,
                "Maximum number of files converted at the same time",
                self,
            )
        )
        self.add_settable(
            cmd2.Settable(
                "output_dir",
                str,
                "Directory of the BMP files (empty: next to the PNG)",
                self,
            )
        )

    read_file_parser = cmd2.Cmd2ArgumentParser()
    read_file_parser.add_argument("filename", help="Path to the file")

    @cmd2.with_argparser(read_file_parser)
    def do_read_file(self, args):
        """Read a PNG file"""
        try:
            self.chunks = read_file(args.filename)
        except (OSError, ConversionError) as e:
            self.perror(f"Cannot read {args.filename}: {e}")
            return
        self.poutput(f"Read {len(self.chunks)} chunks")

    complete_read_file = cmd2.Cmd.path_complete  # complete file path

    def do_show_chunks(self, _args):
        """Show the chunks"""
        if self.chunks:
            for line in format_chunks(self.chunks):
                self.poutput(line)
        else:
            self.poutput("No chunks to show")

    def do_show_ihdr(self, _args):
        """Show the IHDR chunk"""
        if not self.chunks:
            self.poutput("No chunks to show")
            return
        indexes = [
            i
            for i, one_chunk in enumerate(self.chunks)
            if get_type_of_chunk(one_chunk) == b"IHDR"
        ]
        for index in indexes:
            self.poutput(f"IHDR chunk (index {index}):")
            try:
                (
                    width,
                    height,
                    bit_depth,
                    color_type,
                    compression_method,
                    filter_method,
                    interlace_method,
                ) = decode_ihdr(get_data_of_chunk(self.chunks[index]))
            except ConversionError as e:
                self.perror(str(e))
                continue
            self.poutput(f"Width: {width}")
            self.poutput(f"Height: {height}")
            self.poutput(f"Bit depth: {bit_depth}")
            self.poutput(f"Color type: {color_type}")
            self.poutput(f"Compression method: {compression_method}")
            self.poutput(f"Filter method: {filter_method}")
            self.poutput(f"Interlace method: {interlace_method}")
        for phy in get_by_type(self.chunks, b"pHYs"):
            x, y, unit = decode_phy(phy)
            self.poutput(f"Pixels per unit: {x}x{y} (unit {unit})")

    convert_parser = cmd2.Cmd2ArgumentParser()
    convert_parser.add_argument("filenames", nargs="+", help="PNG files to convert")

    @cmd2.with_argparser(convert_parser)
    def do_convert(self, args):
        """Convert PNG files to BMP"""
        if self.max_concurrency < 1:
            self.perror("max_concurrency must be at least 1")
            return
        self.results = convert_files(
            args.filenames,
            output_dir=self.output_dir or None,
            max_concurrency=self.max_concurrency,
        )
        self.show_results()

    complete_convert = cmd2.Cmd.path_complete

    def show_results(self):
        """Print one line per converted file"""
        for result in self.results:
            if isinstance(result, SuccessfullyConvertedFile):
                self.poutput(f"OK     {result.name} ({len(result.data)} bytes)")
            else:
                self.poutput(f"FAILED {result.name}: {result.error}")

    def do_show_results(self, _args):
        """Show the results of the last conversion"""
        if self.results:
            self.show_results()
        else:
            self.poutput("Nothing converted yet")

    def do_exit(self, _args):
        """Exit the program"""
        return True


def cli_main():
    import sys

    logging.basicConfig(
        format="%(asctime)s.%(msecs)03d %(name)s %(levelname)s %(message)s",
        datefmt="%F %H:%M:%S",
        level=logging.WARNING,
    )
    c = CLI()
    sys.exit(c.cmdloop())


if __name__ == "__main__":
    cli_main()
