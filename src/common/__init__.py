from common.events import EventEmitter, Notification
from common.jsonio import atomic_write_json, load_json

__all__ = ["EventEmitter", "Notification", "load_json", "atomic_write_json"]
