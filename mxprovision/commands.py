import logging
import shutil
import subprocess

from mxprovision.errors import CommandError

logger = logging.getLogger(__name__)


def run_command(cmd, check=True, capture_output=True, env=None, cwd=None, interactive=False):
    """Run ``cmd`` and return the CompletedProcess.

    With ``check`` a non-zero exit raises CommandError carrying stderr.
    ``interactive`` leaves stdin/stdout attached to the terminal.
    """
    logger.debug("Executing: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=capture_output and not interactive,
            text=True,
            env=env,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise CommandError(cmd, 127, str(e)) from e
    except OSError as e:
        raise CommandError(cmd, 126, str(e)) from e
    if check and result.returncode != 0:
        logger.debug("stderr: %s", result.stderr)
        raise CommandError(cmd, result.returncode, result.stderr)
    return result


def command_exists(name):
    return shutil.which(name) is not None
