"""Embedded artwork reading with container-specific handlers.

This module reads cover art and basic tags embedded in audio files across
the container formats the library stores (FLAC, MP3, M4A, OGG, Opus).
"""

import base64
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any

import msgspec
from mutagen import MutagenError
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3, ID3NoHeaderError, PictureType
from mutagen.mp4 import MP4, MP4Cover
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis

from .utils.exceptions import MetadataLookupError
from .utils.models import EmbeddedMetadata
from .utils.utils import to_data_uri


class ContainerEnum(Enum):
    flac = "flac"
    opus = "opus"
    ogg = "ogg"
    m4a = "m4a"
    mp3 = "mp3"


class EmbeddedPicture(msgspec.Struct, frozen=True):
    """A picture embedded in an audio file.

    Attributes:
        data: Raw image bytes.
        mime: MIME type declared by the tag.
        front: Whether the picture is tagged as the front cover.
    """

    data: bytes
    mime: str
    front: bool


class BaseArtworkReader(ABC):
    """Abstract base class for container-specific artwork readers."""

    def __init__(self, file_path: str) -> None:
        """Opens the file with the container-specific mutagen class.

        Args:
            file_path: Path to the audio file.
        """
        self.file_path = file_path
        self.audio = self._open()

    @abstractmethod
    def _open(self) -> Any:
        """Opens the container-specific mutagen object."""
        ...

    @abstractmethod
    def _pictures(self) -> list[EmbeddedPicture]:
        """Returns every embedded picture in tag order."""
        ...

    def _text(self, key: str) -> str | None:
        """Returns the first value of a Vorbis-comment style text tag."""
        tags = getattr(self.audio, "tags", None)
        if not tags:
            return None
        values = tags.get(key)
        if not values:
            return None
        return str(values[0])

    def _title(self) -> str | None:
        return self._text("title")

    def _artist(self) -> str | None:
        return self._text("artist")

    def front_cover(self) -> EmbeddedPicture | None:
        """Returns the front cover, falling back to the first picture."""
        pictures = self._pictures()
        if not pictures:
            return None
        return next((p for p in pictures if p.front), pictures[0])

    def read(self) -> EmbeddedMetadata:
        """Reads cover, title and artist.

        Returns:
            The embedded metadata, with the cover as a data URI.
        """
        picture = self.front_cover()
        return EmbeddedMetadata(
            cover=to_data_uri(picture.data, picture.mime) if picture else None,
            title=self._title(),
            artist=self._artist(),
        )


class FLACArtworkReader(BaseArtworkReader):
    """Reader implementation for FLAC files."""

    def _open(self) -> FLAC:
        return FLAC(self.file_path)

    def _pictures(self) -> list[EmbeddedPicture]:
        return [
            EmbeddedPicture(
                data=p.data,
                mime=p.mime or "image/jpeg",
                front=p.type == PictureType.COVER_FRONT,
            )
            for p in self.audio.pictures
        ]


class OggArtworkReader(BaseArtworkReader, ABC):
    """Base reader for Ogg containers storing METADATA_BLOCK_PICTURE."""

    def _pictures(self) -> list[EmbeddedPicture]:
        tags = self.audio.tags
        if not tags:
            return []
        pictures: list[EmbeddedPicture] = []
        for value in tags.get("metadata_block_picture", []):
            try:
                picture = Picture(base64.b64decode(value))
            except (ValueError, MutagenError):
                continue
            pictures.append(
                EmbeddedPicture(
                    data=picture.data,
                    mime=picture.mime or "image/jpeg",
                    front=picture.type == PictureType.COVER_FRONT,
                )
            )
        return pictures


class OggVorbisArtworkReader(OggArtworkReader):
    """Reader implementation for Ogg Vorbis files."""

    def _open(self) -> OggVorbis:
        return OggVorbis(self.file_path)


class OpusArtworkReader(OggArtworkReader):
    """Reader implementation for Opus files."""

    def _open(self) -> OggOpus:
        return OggOpus(self.file_path)


class MP3ArtworkReader(BaseArtworkReader):
    """Reader implementation for MP3 files (ID3 APIC frames)."""

    def _open(self) -> ID3 | None:
        try:
            return ID3(self.file_path)
        except ID3NoHeaderError:
            return None

    def _frame_text(self, frame_id: str) -> str | None:
        if self.audio is None:
            return None
        frame = self.audio.get(frame_id)
        if frame is None or not frame.text:
            return None
        return str(frame.text[0])

    def _title(self) -> str | None:
        return self._frame_text("TIT2")

    def _artist(self) -> str | None:
        return self._frame_text("TPE1")

    def _pictures(self) -> list[EmbeddedPicture]:
        if self.audio is None:
            return []
        return [
            EmbeddedPicture(
                data=frame.data,
                mime=frame.mime or "image/jpeg",
                front=frame.type == PictureType.COVER_FRONT,
            )
            for frame in self.audio.getall("APIC")
        ]


class M4AArtworkReader(BaseArtworkReader):
    """Reader implementation for M4A files."""

    def _open(self) -> MP4:
        return MP4(self.file_path)

    def _title(self) -> str | None:
        return self._text("\xa9nam")

    def _artist(self) -> str | None:
        return self._text("\xa9ART")

    def _pictures(self) -> list[EmbeddedPicture]:
        tags = self.audio.tags
        if not tags:
            return []
        return [
            EmbeddedPicture(
                data=bytes(cover),
                mime=(
                    "image/png"
                    if cover.imageformat == MP4Cover.FORMAT_PNG
                    else "image/jpeg"
                ),
                front=True,
            )
            for cover in tags.get("covr", [])
        ]


def container_for(file_path: str) -> ContainerEnum | None:
    """Guesses the container from the file extension.

    Args:
        file_path: Path to the audio file.

    Returns:
        The container, or None for unsupported extensions.
    """
    suffix = Path(file_path).suffix.lower().lstrip(".")
    if suffix in ("m4a", "mp4", "aac", "alac"):
        return ContainerEnum.m4a
    if suffix == "oga":
        return ContainerEnum.ogg
    try:
        return ContainerEnum(suffix)
    except ValueError:
        return None


def create_reader(file_path: str) -> BaseArtworkReader:
    """Factory function to create the appropriate reader for a file.

    Args:
        file_path: Path to the audio file.

    Returns:
        A container-specific reader instance.

    Raises:
        ValueError: If the container format is not supported.
    """
    reader_map: dict[ContainerEnum, type[BaseArtworkReader]] = {
        ContainerEnum.flac: FLACArtworkReader,
        ContainerEnum.ogg: OggVorbisArtworkReader,
        ContainerEnum.opus: OpusArtworkReader,
        ContainerEnum.mp3: MP3ArtworkReader,
        ContainerEnum.m4a: M4AArtworkReader,
    }

    container = container_for(file_path)
    reader_class = reader_map.get(container) if container else None
    if reader_class is None:
        raise ValueError(f"Unsupported container format: {file_path}")

    return reader_class(file_path)


def read_embedded_metadata(file_path: str) -> EmbeddedMetadata:
    """Reads embedded artwork and tags from an audio file.

    This is blocking; async callers run it in a worker thread.

    Args:
        file_path: Path to the audio file.

    Returns:
        The embedded metadata.

    Raises:
        MetadataLookupError: If the file cannot be read or is unsupported.
    """
    name = Path(file_path).name
    try:
        return create_reader(file_path).read()
    except ValueError as e:
        raise MetadataLookupError(name, str(e), source="tags") from e
    except (MutagenError, OSError) as e:
        raise MetadataLookupError(name, f"unreadable tags: {e}", source="tags") from e
