import os
import secrets

PARTIAL_SUFFIXES = ('.part', '.ytdl', '.temp')


def random_filename(ext: str = "") -> str:
    """Fresh public filename, unrelated to the source"""
    if ext and not ext.startswith('.'):
        ext = f".{ext}"
    return f"{secrets.token_hex(8)}{ext.lower()}"


def scratch_prefix() -> str:
    return f"temp_{secrets.token_hex(8)}"


def extension_of(path: str) -> str:
    """Lower-case extension without the dot"""
    return os.path.splitext(path)[1].lstrip('.').lower()


def is_partial(name: str) -> bool:
    return name.endswith(PARTIAL_SUFFIXES)
