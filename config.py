"""Settings read by hello_common when the package is first imported."""

import os

DEBUG = bool(os.environ.get('HELLOPRINT_DEBUG'))

LOG_FORMAT = '[%(threadName)s] %(name)s: %(message)s'
