import logging

from udfremote.exceptions import PathNotADirectoryError, PathNotFoundError

LOGGER = logging.getLogger(__name__)


def resolve(volume, path):
    """
    Walk ``path`` from the root of ``volume`` and return the entry it names.

    Empty and ``.`` segments are skipped. Names are matched exactly; when a
    directory holds duplicate names the first one recorded wins.
    """
    current = volume.root
    for segment in path.split("/"):
        if segment in ("", "."):
            continue

        if not current.is_directory():
            raise PathNotADirectoryError(f"/{current.path} is not a directory")

        for entry in current.list():
            if entry.name == segment:
                current = entry
                break
        else:
            raise PathNotFoundError(f"{segment} not found in /{current.path}")

    return current


class UdfPathReader:
    volume_type = "udf"

    def __init__(self, volume):
        self.iso = volume
        self.fp = volume.fp

    def get_root_dir(self):
        return self.iso.root

    def iso_iterator(self, base_dir, recursive=False, include_dirs=False):
        for entry in base_dir.list():
            if entry.is_directory():
                if include_dirs:
                    yield entry
                if recursive:
                    yield from self.iso_iterator(entry, recursive, include_dirs)
                continue

            yield entry

    def get_file(self, path):
        return resolve(self.iso, path)

    def get_file_path(self, file):
        return "/" + file.path

    def get_file_date(self, file):
        return file.modified_time()

    def get_file_size(self, file):
        return file.size()

    def get_file_sector(self, file):
        return file.start_sector()

    def is_directory(self, file):
        return file.is_directory()

    def open_file(self, file):
        file.close()
        return file

    def get_file_hash(self, file, algo):
        hash = algo()
        bytes_read = 0
        with self.open_file(file) as f:
            for chunk in iter(lambda: f.read(65536), b""):
                bytes_read += len(chunk)
                hash.update(chunk)

        if bytes_read != self.get_file_size(file):
            LOGGER.warning("File %s partially read. Read %d bytes out of %d bytes",
                           self.get_file_path(file), bytes_read, self.get_file_size(file))
        return hash

    def get_pvd_info(self):
        return self.iso.get_pvd_info()
