import argparse
import hashlib
import logging
import os
import sys

import enlighten

from udfremote.exceptions import CapabilityError, FormatError, UdfException
from udfremote.udf.constants import CACHE_SIZE, DEFAULT_TIMEOUT
from udfremote.udf.path_reader import UdfPathReader
from udfremote.udf.volume import Volume
from udfremote.utils.files import MmappedFile
from udfremote.utils.http_reader import HttpRangeReader

LOGGER = logging.getLogger(__name__)


class ProgressHash:
    """A hashlib object that moves a progress counter forward with every update."""

    def __init__(self, counter, algo):
        self.counter = counter
        self.algo = algo
        self.hash_obj = None

    def __call__(self):
        self.hash_obj = self.algo()
        return self

    def update(self, data):
        self.counter.update(len(data))
        self.hash_obj.update(data)

    def hexdigest(self):
        return self.hash_obj.hexdigest()


def open_source(location, cache_size=CACHE_SIZE, timeout=DEFAULT_TIMEOUT):
    if location.startswith(("http://", "https://")):
        LOGGER.info("Reading %s over HTTP", location)
        return HttpRangeReader(location, cache_size=cache_size, timeout=timeout)

    with open(location, "rb") as f:
        if not os.fstat(f.fileno()).st_size:
            raise FormatError(f"{location} is empty")
        return MmappedFile(f)


def format_entry(path_reader, entry):
    if path_reader.is_directory(entry):
        return f"{'<DIR>':>14}  {'':25}  {path_reader.get_file_path(entry)}/"
    date = path_reader.get_file_date(entry)
    return f"{path_reader.get_file_size(entry):>14}  {date.isoformat(timespec='seconds'):25}  " \
           f"{path_reader.get_file_path(entry)}"


def list_entries(path_reader, entry, recursive, out):
    if not path_reader.is_directory(entry):
        print(format_entry(path_reader, entry), file=out)
        return
    for child in path_reader.iso_iterator(entry, recursive=recursive, include_dirs=True):
        print(format_entry(path_reader, child), file=out)


def extract(path_reader, entry, output, manager):
    file_path = path_reader.get_file_path(entry)
    with manager.counter(total=path_reader.get_file_size(entry), desc=file_path, unit="B", leave=False) as bar:
        with open(output, "wb") as out, path_reader.open_file(entry) as f:
            written = f.copy_to(out, callback=bar.update)
    LOGGER.info("Wrote %s to %s, %d bytes", file_path, output, written)
    return written


def hash_entry(path_reader, entry, manager, algo=hashlib.md5):
    file_path = path_reader.get_file_path(entry)
    with manager.counter(total=path_reader.get_file_size(entry), desc=file_path, unit="B", leave=False) as bar:
        return path_reader.get_file_hash(entry, ProgressHash(bar, algo)).hexdigest()


def build_parser():
    parser = argparse.ArgumentParser(
        description="Browse and extract files from a UDF image, local or behind an HTTP URL")

    parser.add_argument("source", help="Image path or http(s) URL")

    parser.add_argument("path", nargs="?", default="/", help="Path inside the image")

    parser.add_argument("-r",
                        "--recursive",
                        help="List directories recursively",
                        action="store_true",
                        default=False)

    group = parser.add_mutually_exclusive_group()

    group.add_argument("-o",
                       "--output",
                       help="Extract the file at PATH to this local file",
                       type=str)

    group.add_argument("--md5",
                       help="Print the MD5 of the file at PATH",
                       action="store_true",
                       default=False)

    parser.add_argument("--cache-size",
                        help="Size in bytes of the HTTP read-ahead window",
                        type=int,
                        default=CACHE_SIZE)

    parser.add_argument("--timeout",
                        help="HTTP timeout in seconds",
                        type=float,
                        default=DEFAULT_TIMEOUT)

    parser.add_argument("-l", "--log", dest="logLevel", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Set the logging level", default="WARNING")

    return parser


def main(argv=None, out=None):
    args = build_parser().parse_args(argv)
    out = out or sys.stdout
    logging.basicConfig(level=getattr(logging, args.logLevel))

    manager = enlighten.get_manager()
    try:
        with open_source(args.source, args.cache_size, args.timeout) as source:
            path_reader = UdfPathReader(Volume(source))
            entry = path_reader.get_file(args.path)

            if (args.output or args.md5) and path_reader.is_directory(entry):
                raise CapabilityError(f"{path_reader.get_file_path(entry)} is a directory")

            if args.output:
                extract(path_reader, entry, args.output, manager)
            elif args.md5:
                print(f"{hash_entry(path_reader, entry, manager)}  {path_reader.get_file_path(entry)}", file=out)
            else:
                list_entries(path_reader, entry, args.recursive, out)
    except (UdfException, OSError) as e:
        LOGGER.error("%s: %s", args.source, e)
        return 1
    finally:
        manager.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
