import logging
from datetime import datetime

class CSVErrorHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.all_logs = []
        self.warning_logs = []
        self.error_logs = []

    def emit(self, record):
        log_entry = self.format(record)
        entry = {
            'Timestamp': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'Level': record.levelname,
            'Logger': record.name,
            'Message': log_entry
        }
        if record.levelno >= logging.ERROR:
            self.error_logs.append(entry)
        elif record.levelno == logging.WARNING:
            self.warning_logs.append(entry)
        self.all_logs.append(entry)

    def get_all_logs(self):
        return self.all_logs

    def get_warning_logs(self):
        return self.warning_logs

    def get_error_logs(self):
        return self.error_logs

    def clear(self):
        self.all_logs = []
        self.warning_logs = []
        self.error_logs = []
