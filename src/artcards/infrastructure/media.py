"""Image files: versioned save, embedded provenance, directory listing.

Files are truth: an image's provenance (prompt, title, creator, timestamp,
generation settings) lives in the file's own metadata, never in a sidecar.

- PNG: iTXt chunks (``Title``, ``Description``, ``Author``, ``Comment``,
  ``Software``, ``Creation Time``, ``Generation``).
- JPEG / WebP: EXIF (``ImageDescription``, ``Artist``, ``Software``,
  ``Model``, ``DateTime``, ``XPTitle``, ``XPComment``, ``XPSubject``).

Save protocol (:func:`save_image`):

1. ``mkdir -p`` the target directory.
2. Write the bytes to a hidden ``.part`` temp file in that directory.
3. Embed provenance into the temp file (re-encoded via Pillow).
4. Publish under ``{base}_v{NNN}.{ext}`` with ``os.link``, which fails
   if the name exists, so concurrent writers retry with the next version
   and never overwrite each other.
5. Remove the temp file.

A listing never surfaces a half-written image: temp names are hidden and
carry no image extension.

Archives (deck and project bundles) are written and extracted through the
same hidden temp names.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import struct
import uuid
import zipfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image, UnidentifiedImageError
from PIL.PngImagePlugin import PngInfo

from artcards.domain.naming import extension_for_mime, highest_version, versioned_filename

logger = logging.getLogger(__name__)

SOFTWARE_TAG = "artcards"
NO_PROMPT = "No prompt found"
MAX_PUBLISH_ATTEMPTS = 1000

_TEMP_SUFFIX = ".part"

# EXIF tag ids (IFD0)
_EXIF_DESCRIPTION = ExifTags.Base.ImageDescription
_EXIF_ARTIST = ExifTags.Base.Artist
_EXIF_SOFTWARE = ExifTags.Base.Software
_EXIF_MODEL = ExifTags.Base.Model
_EXIF_DATETIME = ExifTags.Base.DateTime
_EXIF_XP_TITLE = ExifTags.Base.XPTitle
_EXIF_XP_COMMENT = ExifTags.Base.XPComment
_EXIF_XP_SUBJECT = ExifTags.Base.XPSubject


class MediaWriteError(OSError):
    """Image bytes could not be written to the output directory."""


class MetadataEmbedError(RuntimeError):
    """Provenance could not be embedded (the image itself may be fine)."""


class MediaReadError(OSError):
    """An image file exists but cannot be opened or parsed."""


@dataclass(frozen=True)
class Provenance:
    """Who/what produced an image. Embedded into the file itself."""

    prompt: str
    title: str = ""
    project: str = ""
    card_id: str = ""
    created: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    generation: dict[str, Any] = field(default_factory=dict)

    @property
    def comment(self) -> str:
        return f"Project: {self.project} | CardID: {self.card_id}"


@dataclass(frozen=True)
class SavedImage:
    """Outcome of :func:`save_image`.

    ``metadata_error`` is set when the bytes were published but provenance
    embedding failed; the file is kept.
    """

    path: Path
    filename: str
    metadata_error: str | None = None


@dataclass(frozen=True)
class ImageFile:
    filename: str
    path: Path
    mtime: float
    created: float


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


def save_image(
    directory: Path,
    data: bytes,
    mime_type: str,
    *,
    base_name: str,
    provenance: Provenance,
    version_width: int = 3,
) -> SavedImage:
    """Persist *data* under a new versioned filename with embedded provenance.

    Raises:
        MediaWriteError: the directory or bytes could not be written; no
            image file was published.
    """
    ext = extension_for_mime(mime_type)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"Cannot create output directory {directory}: {exc}"
        raise MediaWriteError(msg) from exc

    tmp = directory / f".{uuid.uuid4().hex}{_TEMP_SUFFIX}"
    try:
        try:
            with tmp.open("xb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            msg = f"Cannot write image bytes in {directory}: {exc}"
            raise MediaWriteError(msg) from exc

        metadata_error: str | None = None
        try:
            embed_metadata(tmp, ext, provenance)
        except MetadataEmbedError as exc:
            metadata_error = str(exc)
            logger.warning("Provenance not embedded for %s image in %s: %s", ext, directory, exc)

        final = _publish(tmp, directory, base_name, ext, version_width)
    finally:
        tmp.unlink(missing_ok=True)

    logger.debug("Saved image %s", final)
    return SavedImage(path=final, filename=final.name, metadata_error=metadata_error)


def _publish(tmp: Path, directory: Path, base: str, ext: str, width: int) -> Path:
    """Hard-link *tmp* to the next free versioned name (no-clobber)."""
    for _ in range(MAX_PUBLISH_ATTEMPTS):
        names = [p.name for p in directory.iterdir()]
        version = highest_version(names, base) + 1
        final = directory / versioned_filename(base, version, ext, width=width)
        try:
            os.link(tmp, final)
        except FileExistsError:
            continue
        except OSError as exc:
            msg = f"Cannot publish image {final.name}: {exc}"
            raise MediaWriteError(msg) from exc
        return final
    msg = f"No free filename for {base!r} in {directory} after {MAX_PUBLISH_ATTEMPTS} attempts"
    raise MediaWriteError(msg)


# ---------------------------------------------------------------------------
# Embed
# ---------------------------------------------------------------------------


def _exif_text(value: str) -> bytes:
    # ASCII-typed EXIF fields carry raw bytes; UTF-8 keeps non-ASCII prompts intact.
    return value.encode("utf-8")


def _xp_text(value: str) -> bytes:
    return value.encode("utf-16-le") + b"\x00\x00"


def embed_metadata(path: Path, ext: str, provenance: Provenance) -> None:
    """Rewrite *path* in place with *provenance* embedded.

    Raises:
        MetadataEmbedError: unsupported format, undecodable image, or write failure.
    """
    generation = json.dumps(provenance.generation, sort_keys=True)
    staged = path.with_name(f"{path.name}.meta")
    try:
        with Image.open(path) as img:
            img.load()
            fmt = img.format
            if fmt == "PNG":
                info = PngInfo()
                info.add_itxt("Title", provenance.title or provenance.card_id)
                info.add_itxt("Description", provenance.prompt)
                info.add_itxt("Author", provenance.project)
                info.add_itxt("Comment", provenance.comment)
                info.add_itxt("Software", SOFTWARE_TAG)
                info.add_itxt("Creation Time", provenance.created)
                info.add_itxt("Generation", generation)
                img.save(staged, format="PNG", pnginfo=info)
            elif fmt in ("JPEG", "WEBP"):
                exif = img.getexif()
                exif[_EXIF_DESCRIPTION] = _exif_text(provenance.prompt)
                exif[_EXIF_ARTIST] = _exif_text(provenance.project)
                exif[_EXIF_SOFTWARE] = SOFTWARE_TAG
                exif[_EXIF_MODEL] = _exif_text(str(provenance.generation.get("model", "")))
                exif[_EXIF_DATETIME] = _exif_datetime(provenance.created)
                exif[_EXIF_XP_TITLE] = _xp_text(provenance.title or provenance.card_id)
                exif[_EXIF_XP_COMMENT] = _xp_text(provenance.comment)
                exif[_EXIF_XP_SUBJECT] = _xp_text(generation)
                if fmt == "JPEG":
                    img.save(staged, format="JPEG", exif=exif.tobytes(), quality="keep")
                else:
                    img.save(staged, format="WEBP", exif=exif.tobytes(), quality=95)
            else:
                msg = f"Unsupported image format for metadata: {fmt or ext}"
                raise MetadataEmbedError(msg)
        os.replace(staged, path)
    except MetadataEmbedError:
        raise
    except (OSError, ValueError, UnidentifiedImageError) as exc:
        msg = f"Metadata embedding failed: {exc}"
        raise MetadataEmbedError(msg) from exc
    finally:
        staged.unlink(missing_ok=True)


def _exif_datetime(iso: str) -> str:
    try:
        return datetime.fromisoformat(iso).strftime("%Y:%m:%d %H:%M:%S")
    except ValueError:
        return iso


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


def _decode_exif_text(value: Any) -> str:
    """Undo Pillow's latin-1 decoding of ASCII-typed tags written as UTF-8."""
    if isinstance(value, bytes):
        raw = value
    elif isinstance(value, str):
        raw = value.encode("latin-1", "replace")
    else:
        return str(value)
    return raw.rstrip(b"\x00").decode("utf-8", "replace")


def _decode_xp(value: Any) -> str:
    if isinstance(value, tuple):
        value = bytes(value)
    if isinstance(value, bytes):
        return value.decode("utf-16-le", "replace").rstrip("\x00")
    return str(value) if value is not None else ""


def _parse_generation(raw: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def read_tags(path: Path) -> dict[str, str]:
    """Normalized provenance tags of one image (missing tags are absent keys).

    Raises:
        MediaReadError: the file cannot be decoded as an image.
    """
    try:
        with Image.open(path) as img:
            fmt = img.format
            if fmt == "PNG":
                text = dict(getattr(img, "text", {}) or {})
                mapping = {
                    "title": text.get("Title"),
                    "prompt": text.get("Description"),
                    "creator": text.get("Author"),
                    "comment": text.get("Comment"),
                    "software": text.get("Software"),
                    "created": text.get("Creation Time"),
                    "generation": text.get("Generation"),
                }
            else:
                exif = img.getexif()
                mapping = {
                    "title": _decode_xp(exif.get(_EXIF_XP_TITLE)) if _EXIF_XP_TITLE in exif else None,
                    "prompt": _decode_exif_text(exif[_EXIF_DESCRIPTION])
                    if _EXIF_DESCRIPTION in exif
                    else None,
                    "creator": _decode_exif_text(exif[_EXIF_ARTIST]) if _EXIF_ARTIST in exif else None,
                    "comment": _decode_xp(exif.get(_EXIF_XP_COMMENT))
                    if _EXIF_XP_COMMENT in exif
                    else None,
                    "software": _decode_exif_text(exif[_EXIF_SOFTWARE])
                    if _EXIF_SOFTWARE in exif
                    else None,
                    "model": _decode_exif_text(exif[_EXIF_MODEL]) if _EXIF_MODEL in exif else None,
                    "generation": _decode_xp(exif.get(_EXIF_XP_SUBJECT))
                    if _EXIF_XP_SUBJECT in exif
                    else None,
                }
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, struct.error) as exc:
        # Pillow surfaces damaged EXIF or text chunks as any of these.
        msg = f"Cannot read image {path.name}: {exc}"
        raise MediaReadError(msg) from exc
    return {k: v for k, v in mapping.items() if v}


def read_metadata(path: Path) -> dict[str, Any]:
    """File stats plus embedded provenance for one image.

    A missing prompt tag yields ``prompt == "No prompt found"``, not an error.
    """
    stat = path.stat()
    tags = read_tags(path)
    generation = _parse_generation(tags.get("generation", ""))
    created = getattr(stat, "st_birthtime", None) or stat.st_mtime
    return {
        "filename": path.name,
        "created": datetime.fromtimestamp(created, UTC).isoformat(),
        "embedded_created": tags.get("created", ""),
        "prompt": tags.get("prompt") or NO_PROMPT,
        "has_prompt": "prompt" in tags,
        "title": tags.get("title", ""),
        "creator": tags.get("creator", ""),
        "comment": tags.get("comment", ""),
        "model": tags.get("model") or (generation or {}).get("model", ""),
        "generation": generation,
    }


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def list_image_files(directory: Path, extensions: tuple[str, ...]) -> list[ImageFile]:
    """Image files directly in *directory* (unsorted). Missing directory → ``[]``."""
    allowed = {e.lower().lstrip(".") for e in extensions}
    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        return []
    files: list[ImageFile] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        if entry.suffix.lower().lstrip(".") not in allowed:
            continue
        try:
            st = entry.stat()
        except FileNotFoundError:
            continue  # removed between listing and stat
        if not entry.is_file():
            continue
        created = getattr(st, "st_birthtime", None) or st.st_mtime
        files.append(ImageFile(filename=entry.name, path=entry, mtime=st.st_mtime, created=created))
    return files


# ---------------------------------------------------------------------------
# Removal and export
# ---------------------------------------------------------------------------


def remove_tree(directory: Path) -> bool:
    """Recursively delete *directory*. Returns False if it was already gone.

    Raises:
        OSError: the tree exists but could not be (fully) removed.
    """
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        return False
    logger.info("Removed output directory %s", directory)
    return True


def write_archive(destination: Path, members: list[tuple[Path, str]]) -> int:
    """Write a zip of ``(source, arcname)`` pairs to *destination*.

    Built under a temp name beside the target and renamed into place, so a
    failed export never leaves a truncated archive behind. Returns the
    number of members written.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}{_TEMP_SUFFIX}")
    try:
        with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for source, arcname in members:
                zf.write(source, arcname)
        os.replace(tmp, destination)
    finally:
        tmp.unlink(missing_ok=True)
    return len(members)


def member_mtime(info: zipfile.ZipInfo) -> float:
    """Modification time of an archive member as a POSIX timestamp.

    Zip stores naive local time with two-second resolution.
    """
    return datetime(*info.date_time).timestamp()


def is_newer_member(info: zipfile.ZipInfo, target: Path) -> bool:
    """True unless *target* exists and was modified after *info*."""
    try:
        on_disk = target.stat().st_mtime
    except FileNotFoundError:
        return True
    # Allow for the zip clock's two-second granularity.
    return member_mtime(info) + 2 >= on_disk


def extract_member(archive: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> None:
    """Write one member to *target* atomically and carry over its timestamp."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex}{_TEMP_SUFFIX}")
    try:
        with archive.open(info) as src, tmp.open("xb") as dst:
            shutil.copyfileobj(src, dst)
        os.replace(tmp, target)
    finally:
        tmp.unlink(missing_ok=True)
    apply_member_mtime(target, info)


def apply_member_mtime(target: Path, info: zipfile.ZipInfo) -> None:
    stamp = member_mtime(info)
    os.utime(target, (stamp, stamp))
