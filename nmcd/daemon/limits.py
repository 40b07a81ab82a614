"""Process resource limits."""

from __future__ import annotations

from nmcd.utils.exceptions import NmcdError
from nmcd.utils.logging_config import get_logger

logger = get_logger(__name__)

FILE_DESCRIPTORS_WANTED = 4096
FILE_DESCRIPTORS_REQUIRED = 2048


def set_limits() -> None:
    """Raise the open file soft limit so peers and the database fit.

    Raises:
        NmcdError: If the hard limit is below the required minimum

    """
    try:
        import resource
    except ImportError:
        # No rlimits on Windows
        return

    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY or soft >= FILE_DESCRIPTORS_WANTED:
        return

    wanted = FILE_DESCRIPTORS_WANTED
    if hard != resource.RLIM_INFINITY and hard < wanted:
        if hard < FILE_DESCRIPTORS_REQUIRED:
            msg = (
                f"need at least {FILE_DESCRIPTORS_REQUIRED} file descriptors, "
                f"hard limit is {hard}"
            )
            raise NmcdError(msg, {"soft": soft, "hard": hard})
        wanted = hard

    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (wanted, hard))
    except (OSError, ValueError) as e:
        msg = f"unable to raise the open file limit to {wanted}: {e}"
        raise NmcdError(msg) from e
    logger.debug("Raised open file limit from %d to %d", soft, wanted)
