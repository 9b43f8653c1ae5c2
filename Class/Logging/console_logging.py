import logging
import sys

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
HANDLER_NAME = 'console'


def configure_console_logging(verbose=False):
    root = logging.getLogger()
    for handler in root.handlers:
        if handler.get_name() == HANDLER_NAME:
            handler.setStream(sys.stderr)
            handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            return handler
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)
    # the Azure SDK logs every HTTP request at INFO
    logging.getLogger('azure').setLevel(logging.WARNING)
    return handler
