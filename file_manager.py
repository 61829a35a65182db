import os
import logging

from config import Config
from errors import BasicIOError, BasicFileNotFoundError, BadFileNameError, FileAlreadyExistsError

logger = logging.getLogger(__name__)

EXTENSIONS = ('', '.BAS', '.bas')


class FileManager:
    """Program storage for LOAD, SAVE and RUN "name".

    Names without a directory part are looked up in the configured disks
    (D0, D1, ...) in order; SAVE writes to the first disk.
    """

    def __init__(self, config=None):
        self.config = config or Config()
        self.disks = self.config.disks or ['.']

    def _check_name(self, filename):
        if not filename or not filename.strip() or '\0' in filename:
            raise BadFileNameError()
        return filename.strip()

    def _candidates(self, filename):
        if os.path.dirname(filename) or os.path.isabs(filename):
            dirs = ['']
        else:
            dirs = [''] + self.disks
        for directory in dirs:
            for ext in EXTENSIONS:
                yield os.path.join(directory, filename + ext)

    def find_program(self, filename):
        filename = self._check_name(filename)
        for path in self._candidates(filename):
            if os.path.isfile(path):
                return path
        return None

    def read_program(self, filename):
        path = self.find_program(filename)
        if path is None:
            raise BasicFileNotFoundError(filename)
        try:
            with open(path, 'r') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise BasicIOError(str(e))
        logger.info("read %s", path)
        return text

    def save_program(self, filename, lines, overwrite=True):
        filename = self._check_name(filename)
        if not lines:
            raise BasicIOError("NOTHING TO SAVE")
        if os.path.dirname(filename) or os.path.isabs(filename):
            path = filename
        else:
            path = os.path.join(self.disks[0], filename)
        if not overwrite and os.path.exists(path):
            raise FileAlreadyExistsError(filename)
        try:
            directory = os.path.dirname(path)
            if directory and not os.path.isdir(directory):
                os.makedirs(directory)
            with open(path, 'w') as f:
                for line in lines:
                    f.write(line + "\n")
        except OSError as e:
            raise BasicIOError(str(e))
        logger.info("saved %d lines to %s", len(lines), path)
        return path
