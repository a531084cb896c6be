import asyncio
import errno
import os
import shutil
import uuid
from typing import List, Optional, Tuple

import aiofiles

from media_fetcher.config.settings import config
from media_fetcher.core.logging import LogContext, log_debug, log_warning
from media_fetcher.utils.filename import is_partial, random_filename, scratch_prefix


class ScratchArea:
    """
    Private staging directory for one request.

    yt-dlp picks the final extension itself, so files are found again by
    the random prefix they were given. Every request gets its own
    subdirectory under the scratch root.
    """

    def __init__(self, root: Optional[str] = None, context: LogContext = None):
        self.root = os.path.abspath(root or config.media.scratch_dir)
        self.path = os.path.join(self.root, f"req_{uuid.uuid4().hex}")
        self.context = context

    async def __aenter__(self) -> "ScratchArea":
        os.makedirs(self.path, exist_ok=True)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def new_prefix(self) -> str:
        return scratch_prefix()

    def template(self, prefix: str, numbered: bool = False) -> str:
        """yt-dlp output template for a prefix"""
        name = f"{prefix}_%(autonumber)s.%(ext)s" if numbered else f"{prefix}.%(ext)s"
        return os.path.join(self.path, name)

    def find(self, prefix: str, include_partial: bool = False) -> List[str]:
        """Files carrying the prefix, in stable (sorted) order"""
        try:
            names = sorted(os.listdir(self.path))
        except FileNotFoundError:
            return []
        return [
            os.path.join(self.path, name)
            for name in names
            if name.startswith(prefix) and (include_partial or not is_partial(name))
        ]

    def discard(self, path: str) -> None:
        """Best-effort removal of a staged file"""
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log_warning(self.context, f"Could not remove staged file {os.path.basename(path)}: {e}")

    def discard_prefix(self, prefix: str, keep: Optional[str] = None) -> None:
        for path in self.find(prefix, include_partial=True):
            if path != keep:
                self.discard(path)

    async def write(self, data: bytes, ext: str) -> str:
        """Write a body into scratch, returns its path"""
        path = os.path.join(self.path, f"{self.new_prefix()}{ext}")
        async with aiofiles.open(path, 'wb') as f:
            await f.write(data)
        return path

    def scrub(self, text: str) -> str:
        """Hide scratch locations from user-facing messages"""
        return text.replace(self.path, "<scratch>").replace(self.root, "<scratch>")

    async def close(self) -> None:
        """Remove the whole request directory off the event loop, logging what could not be removed"""
        try:
            await asyncio.to_thread(shutil.rmtree, self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log_warning(self.context, f"Scratch cleanup failed: {e.strerror}")


class PublicStore:
    """Directory of finished artifacts served under the public URL prefix"""

    def __init__(self, directory: Optional[str] = None, url_prefix: Optional[str] = None, context: LogContext = None):
        self.directory = os.path.abspath(directory or config.media.public_dir)
        self.url_prefix = (url_prefix or config.media.url_prefix).rstrip('/')
        self.context = context

    def ensure(self) -> None:
        os.makedirs(self.directory, exist_ok=True)

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"

    def promote(self, staged_path: str) -> Tuple[str, int]:
        """
        Move a staged file into the public directory under a fresh name.
        Returns (filename, size). The file only becomes visible complete.
        """
        ext = os.path.splitext(staged_path)[1]
        filename = random_filename(ext)
        target = os.path.join(self.directory, filename)

        try:
            os.replace(staged_path, target)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            # Different filesystem: copy next to the target, then rename
            partial = os.path.join(self.directory, f".partial-{filename}")
            try:
                shutil.copyfile(staged_path, partial)
                os.replace(partial, target)
            finally:
                if os.path.exists(partial):
                    os.remove(partial)
            os.remove(staged_path)

        size = os.path.getsize(target)
        log_debug(self.context, f"Promoted staged file to {filename} ({size} bytes)")
        return filename, size
