import logging
import os
import tempfile

from mxprovision.errors import WriteError

logger = logging.getLogger(__name__)


def rooted(root, path):
    """Place an absolute system path under ``root`` (``/`` in production)."""
    return os.path.join(root, path.lstrip("/"))


def ensure_directory(path, mode=0o755):
    if os.path.isdir(path):
        logger.info("Directory already exists: %s", path)
        return False
    try:
        os.makedirs(path, mode=mode)
    except OSError as e:
        raise WriteError(f"Cannot create directory {path}: {e}") from e
    logger.info("Created directory: %s", path)
    return True


def ensure_file(path, mode=0o644):
    if os.path.isfile(path):
        logger.info("File already exists: %s", path)
        return False
    try:
        # O_EXCL so a file appearing between the check and the open is left alone
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
        os.close(fd)
    except FileExistsError:
        logger.info("File already exists: %s", path)
        return False
    except OSError as e:
        raise WriteError(f"Cannot create file {path}: {e}") from e
    logger.info("Created file: %s", path)
    return True


def write_file(path, content, mode=0o644):
    """Replace ``path`` with ``content`` in one rename.

    The text goes to a temporary file in the same directory first, so readers
    see either the previous file or the complete new one.
    """
    directory = os.path.dirname(path) or "."
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    except OSError as e:
        raise WriteError(f"Cannot write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise WriteError(f"Cannot write {path}: {e}") from e
    logger.info("Wrote file: %s", path)
