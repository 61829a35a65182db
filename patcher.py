import re
import zlib
import logging
import urllib.error
import urllib.request

from config import Config
from errors import (BasicError, BasicIOError, BadFileNameError, BasicFileNotFoundError,
                    DirectStatementInFileError, NetworkError)
from file_manager import FileManager
from program import Program

logger = logging.getLogger(__name__)

REMOTE_PREFIXES = ('http://', 'https://', 'file://')

PATCH_LINE_RE = re.compile(r'\s*(\d+)(?:\s(.*))?$')


def listing_crc(lines):
    """CRC-32 over the canonical listing lines, without line separators."""
    crc = 0
    for line in lines:
        crc = zlib.crc32(line.encode('utf-8'), crc)
    return crc & 0xFFFFFFFF


class PatchedSource:
    def __init__(self, text, patches=None, crc=None, output_name=None):
        self.text = text
        self.patches = patches or []    # (line_number, replacement_text); '' deletes
        self.crc = crc
        self.output_name = output_name


class PatchRetriever:
    """Fetches program text by name or URL and applies patch files.

    A patch file starts with a line beginning with `"` or `'`:

        ' comment
        "OUT.BAS" 1A2B3C4D https://example.com/original.bas
        100 PRINT "FIXED"
        110

    The base program is fetched from the URL and must match the CRC; the
    numbered lines replace (or, when empty, delete) lines of it; the result is
    saved under the quoted name.
    """

    def __init__(self, config=None, opener=None, file_manager=None):
        self.config = config or Config()
        self.opener = opener or urllib.request.urlopen
        self.file_manager = file_manager or FileManager(self.config)

    def resolve(self, name):
        if name.startswith('//'):
            return self.config.patch_url + name[2:]
        return name

    def is_remote(self, name):
        return name.startswith('//') or name.lower().startswith(REMOTE_PREFIXES)

    def fetch(self, name):
        if not self.is_remote(name):
            return self.file_manager.read_program(name)
        url = self.resolve(name)
        logger.info("retrieving %s", url)
        try:
            with self.opener(url, timeout=30) as response:
                data = response.read()
        except urllib.error.HTTPError as e:
            raise BasicFileNotFoundError("%s %s" % (e.code, e.reason))
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise NetworkError(str(e))
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise NetworkError(str(e))

    def retrieve(self, name):
        text = self.fetch(name)
        lines = text.splitlines()
        if lines and lines[0].startswith(('"', "'")):
            return self._parse_patch_file(lines)
        return PatchedSource(text)

    def _parse_patch_file(self, lines):
        source = None
        output_name = None
        patches = []
        for index, line in enumerate(lines):
            where = "In line %d of the patch file." % (index + 1)
            if not line.strip():
                continue
            if line.startswith("'"):
                logger.info("patch: %s", line[1:].strip())
                continue
            if line.startswith('"'):
                parts = line.split()
                if len(parts) == 1:
                    output_name = self._parse_filename(parts[0], where)
                elif len(parts) == 3:
                    if source is not None:
                        raise BasicIOError("Only one base program per patch file. " + where)
                    output_name = self._parse_filename(parts[0], where)
                    try:
                        crc = int(parts[1], 16)
                    except ValueError:
                        raise BasicIOError("Unable to parse CRC. " + where)
                    source = PatchedSource(self.fetch(parts[2]), crc=crc)
                else:
                    raise BasicIOError("Unable to parse info. " + where)
                continue
            mo = PATCH_LINE_RE.match(line)
            if mo is None:
                raise DirectStatementInFileError(where)
            patches.append((int(mo.group(1)), (mo.group(2) or '').strip()))
        if source is None:
            source = PatchedSource("")
        source.patches = patches
        source.output_name = output_name
        return source

    def _parse_filename(self, text, where):
        if len(text) < 3 or not text.startswith('"') or not text.endswith('"'):
            raise BadFileNameError(where)
        return text[1:-1]

    def apply_patches(self, source, parser):
        """Check the CRC, apply the patches and return the final listing text."""
        program = Program()
        try:
            program.load_text(source.text, parser)
            if source.crc is not None:
                crc = listing_crc(program.listing())
                if crc != source.crc:
                    raise BasicIOError("Expected CRC %08X got %08X." % (source.crc, crc))
            for number, text in source.patches:
                if not text:
                    program.delete(number)
                    continue
                _, statements, body = parser.parse_source("%d %s" % (number, text))
                program.insert_or_replace(number, body, statements)
        except BasicIOError:
            raise
        except BasicError as e:
            raise BasicIOError("Patched program does not load: %s" % str(e).lstrip('?'))
        return "\n".join(program.listing()) + "\n"

    def load(self, name, parser):
        """Fetch name, apply any patch file, save the patched result. Returns program text."""
        source = self.retrieve(name)
        if not source.patches and source.crc is None and source.output_name is None:
            return source.text
        text = self.apply_patches(source, parser)
        if source.output_name:
            path = self.file_manager.save_program(source.output_name, text.splitlines(),
                                                  overwrite=False)
            logger.info("patched program saved to %s", path)
        return text
