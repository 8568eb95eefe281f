import datetime
import threading

MAX_LOGS = 1000


class LogManager:
    def __init__(self, max_logs: int = MAX_LOGS):
        self.logs = []
        self.max_logs = max_logs
        self._lock = threading.Lock()

    def add_log(self, source: str, message: str, level: str = "INFO"):
        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry = {
            "timestamp": timestamp,
            "source": source,
            "level": level,
            "message": message
        }
        # Written from the capture thread and the detector callbacks
        with self._lock:
            self.logs.append(log_entry)
            if len(self.logs) > self.max_logs:
                self.logs.pop(0)
        return log_entry

    def get_logs(self, limit: int = 100, level: str = None):
        with self._lock:
            entries = list(self.logs)
        if level:
            entries = [e for e in entries if e["level"] == level.upper()]
        if limit <= 0:
            return []
        return entries[-limit:]

    def clear_logs(self):
        with self._lock:
            self.logs = []


# Global instance
logger = LogManager()


def log(source: str, message: str, level: str = "INFO"):
    print(f"[{level}] {source}: {message}")
    return logger.add_log(source, message, level)


def get_all_logs(limit: int = 100, level: str = None):
    return logger.get_logs(limit, level)
