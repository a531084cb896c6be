from .filename import extension_of, random_filename
from .urls import safe_url_for_log

__all__ = ["extension_of", "random_filename", "safe_url_for_log"]
