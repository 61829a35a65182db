import os
import logging

logger = logging.getLogger(__name__)

CONFIG_FILE = 'BASICINI'

DEFAULTS = {
    'D0': 'basic_programs',
    'PATCH_URL': 'https://raw.githubusercontent.com/AE9RB/basic-lang/master/patch/',
    'STACK_LIMIT': '256',
    'MEMORY_LIMIT': '65535',
    'LOG_LEVEL': 'WARNING',
    'PROMPT': 'READY.',
}

INTEGER_KEYS = ('STACK_LIMIT', 'MEMORY_LIMIT')


class Config:
    """Settings read from a KEY=VALUE file.

    D0..D9 name program directories; LOAD searches them in order and SAVE
    writes to D0.
    """

    def __init__(self, values=None):
        self.values = dict(DEFAULTS)
        if values:
            self.values.update((k.upper(), str(v)) for k, v in values.items())

    def get(self, key, default=None):
        return self.values.get(key.upper(), default)

    def get_int(self, key):
        try:
            return int(self.values[key])
        except ValueError:
            logger.warning("%s=%r is not a number, using %s", key, self.values[key], DEFAULTS[key])
            return int(DEFAULTS[key])

    @property
    def disks(self):
        keys = sorted(k for k in self.values if len(k) == 2 and k[0] == 'D' and k[1].isdigit())
        return [self.values[k] for k in keys]

    @property
    def stack_limit(self):
        return self.get_int('STACK_LIMIT')

    @property
    def memory_limit(self):
        return self.get_int('MEMORY_LIMIT')

    @property
    def log_level(self):
        return self.values['LOG_LEVEL'].upper()

    @property
    def prompt(self):
        return self.values['PROMPT']

    @property
    def patch_url(self):
        return self.values['PATCH_URL']


def load_config(path=None):
    if path is None:
        path = os.environ.get('BASIC_INI', CONFIG_FILE)
    values = {}
    if not os.path.exists(path):
        return Config()
    try:
        with open(path, 'r') as f:
            for number, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' not in line:
                    logger.warning("%s:%d: ignoring line without '='", path, number)
                    continue
                key, val = line.split('=', 1)
                values[key.strip().upper()] = val.strip()
    except OSError as e:
        logger.warning("could not read %s: %s", path, e)
    return Config(values)
