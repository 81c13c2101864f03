"""Builds the zip archive of a backup directory, optionally with AES-encrypted entries."""

import os
import shutil
import time
import zipfile
import zlib
from pathlib import Path
from typing import Optional

import pyzipper

from common.exceptions import LocalIOError
from common.logging_config import get_logger

logger = get_logger(__name__)

# Earliest modification time a zip entry can record.
ZIP_EPOCH = time.mktime((1980, 1, 1, 0, 0, 0, 0, 0, -1))


def _open_archive(archive_path: Path, compression_level: int, password: Optional[str]) -> pyzipper.AESZipFile:
    archive = pyzipper.AESZipFile(
        archive_path,
        mode='x',
        compression=pyzipper.ZIP_DEFLATED,
        compresslevel=compression_level,
        allowZip64=True,
        encryption=pyzipper.WZ_AES if password else None,
    )
    if password:
        archive.setpassword(password.encode('utf-8'))
    return archive


def _add_file(archive: pyzipper.AESZipFile, path: Path, arcname: str) -> None:
    """
    Write one file into the archive.

    A file dated before 1980 is re-dated to 1980 in place and written again.

    Raises:
        OSError: If the file cannot be read or re-dated
        ValueError: If the entry is still rejected after re-dating
    """
    try:
        archive.write(path, arcname)
        return
    except ValueError:
        if path.stat().st_mtime >= ZIP_EPOCH:
            raise
    logger.warning(f"{arcname} is dated before 1980, storing it as 1980-01-01")
    os.utime(path, (ZIP_EPOCH, ZIP_EPOCH))
    archive.write(path, arcname)


def build_archive(
    source_dir: Path,
    archive_path: Path,
    compression_level: int,
    password: Optional[str] = None
) -> int:
    """
    Zip every file below source_dir into archive_path.

    Entries that cannot be read are logged and skipped; the archive is still
    produced. With a password every entry is encrypted with WinZip AES-256,
    which 7-Zip and other common zip tools can open.

    Args:
        source_dir: Directory to archive (paths are stored relative to it)
        archive_path: Output file, must not exist
        compression_level: Deflate level (0-9)
        password: Optional passphrase for entry encryption

    Returns:
        Number of files added

    Raises:
        LocalIOError: If the archive cannot be created or finalized
    """
    try:
        archive = _open_archive(archive_path, compression_level, password)
    except OSError as e:
        raise LocalIOError("Failed to create temporary file", str(e)) from e

    added = 0
    try:
        def report(error: OSError) -> None:
            logger.warning(f"readdir() failed: {error}")

        for dirpath, dirnames, filenames in os.walk(source_dir, onerror=report):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                arcname = path.relative_to(source_dir).as_posix()
                try:
                    _add_file(archive, path, arcname)
                except (OSError, ValueError) as e:
                    logger.warning(f"Failed to add {arcname}: {e}")
                    continue
                added += 1
                logger.info(f"Added file {arcname}")
    finally:
        try:
            archive.close()
        except OSError as e:
            raise LocalIOError("Failed to finalize a zip archive", str(e)) from e

    return added


def decrypt_archive(source: Path, destination: Path, passphrase: str) -> int:
    """
    Rewrite an AES-encrypted archive as a plain zip.

    The destination is removed again if any entry fails to decrypt.

    Args:
        source: Archive produced with a password
        destination: Output zip, must not exist
        passphrase: Passphrase used for the backup

    Returns:
        Number of entries written

    Raises:
        LocalIOError: If the file is not an encrypted zip, the passphrase
            is wrong, or reading/writing fails
    """
    try:
        with pyzipper.AESZipFile(source) as encrypted:
            entries = encrypted.infolist()
            if not any(info.flag_bits & 0x1 for info in entries):
                raise LocalIOError("Not an encrypted archive", str(source))
            encrypted.setpassword(passphrase.encode('utf-8'))

            try:
                with zipfile.ZipFile(destination, mode='x', compression=zipfile.ZIP_DEFLATED,
                                     allowZip64=True) as plain:
                    for info in entries:
                        entry = zipfile.ZipInfo(info.filename, info.date_time)
                        entry.external_attr = info.external_attr
                        entry.compress_type = zipfile.ZIP_DEFLATED
                        with encrypted.open(info) as src, plain.open(entry, 'w', force_zip64=True) as dst:
                            shutil.copyfileobj(src, dst)
            except (RuntimeError, pyzipper.BadZipFile, zlib.error) as e:
                destination.unlink(missing_ok=True)
                raise LocalIOError("Wrong passphrase or corrupted archive", str(e)) from e
    except pyzipper.BadZipFile as e:
        raise LocalIOError("Not an encrypted archive", str(e)) from e
    except OSError as e:
        raise LocalIOError("Failed to decrypt the archive", str(e)) from e

    logger.info(f"Decrypted {len(entries)} entries")
    return len(entries)
