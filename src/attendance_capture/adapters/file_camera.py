"""Camera capability backed by image files on disk."""

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from attendance_capture.domain.capture import PermissionState
from attendance_capture.domain.errors import CaptureFailedError

JPEG_SIGNATURE = b"\xff\xd8\xff"


@dataclass
class FileCamera:
    """Camera that captures by copying a JPEG source into a capture directory."""

    source: Path | None = None
    capture_dir: Path | None = None
    _captured: set[Path] = field(default_factory=set)

    def point_at(self, source: Path) -> None:
        """Select the image the next capture produces."""
        self.source = source

    async def get_permission(self) -> PermissionState:
        """Undetermined until a source is selected."""
        if self.source is None:
            return PermissionState.UNDETERMINED
        return self._source_permission()

    async def request_permission(self) -> PermissionState:
        """Grant access when the source is a readable file."""
        if self.source is None:
            return PermissionState.DENIED
        return self._source_permission()

    async def take_picture(self) -> Path:
        """Copy the source JPEG and return the copy's path."""
        if self.source is None:
            raise CaptureFailedError("No camera source selected")
        try:
            with self.source.open("rb") as handle:
                header = handle.read(len(JPEG_SIGNATURE))
            if header != JPEG_SIGNATURE:
                raise CaptureFailedError(f"{self.source} is not a JPEG image")
            directory = self.capture_dir or Path(tempfile.gettempdir())
            directory.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix="capture_", suffix=".jpg", dir=directory
            )
            os.close(fd)
            target = Path(name)
            try:
                shutil.copyfile(self.source, target)
            except OSError:
                target.unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CaptureFailedError(f"Failed to read {self.source}") from exc
        self._captured.add(target)
        return target

    async def discard(self, path: Path) -> None:
        """Delete a capture produced by this camera."""
        if path in self._captured:
            path.unlink(missing_ok=True)
            self._captured.discard(path)

    def _source_permission(self) -> PermissionState:
        if self.source is not None and self.source.is_file():
            return PermissionState.GRANTED
        return PermissionState.DENIED
