"""Follow a log file like ``tail -F``."""
import os
import logging

logger = logging.getLogger("hostwatch.logs.stream")


def _open(path, at_end):
    try:
        handle = open(path, "r", encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None, None
    if at_end:
        handle.seek(0, os.SEEK_END)
    return handle, os.fstat(handle.fileno()).st_ino


def follow(path, stop_event, poll_interval=0.25):
    """Yield lines appended to ``path`` until ``stop_event`` is set.

    Starts at the current end of the file. A rotated file (new inode) is
    reopened from its beginning, a truncated one is re-read from offset 0,
    and a missing file is waited for. Incomplete trailing lines are held
    back until their newline arrives.
    """
    handle, inode = _open(path, at_end=True)
    if handle is None:
        logger.info(f"{path} does not exist yet, waiting for it")
    pending = ""
    try:
        while not stop_event.is_set():
            if handle is None:
                handle, inode = _open(path, at_end=False)
                if handle is None:
                    stop_event.wait(poll_interval)
                    continue
                logger.debug(f"Opened {path}")

            chunk = handle.readline()
            if chunk:
                pending += chunk
                if pending.endswith("\n"):
                    line, pending = pending.rstrip("\r\n"), ""
                    yield line
                continue

            try:
                st = os.stat(path)
            except FileNotFoundError:
                st = None

            if st is None or st.st_ino != inode:
                logger.info(f"{path} was rotated, reopening")
                handle.close()
                handle, inode, pending = None, None, ""
                continue
            if st.st_size < handle.tell():
                logger.info(f"{path} was truncated, reading from start")
                handle.seek(0)
                pending = ""
                continue

            stop_event.wait(poll_interval)
    finally:
        if handle is not None:
            handle.close()


def stream_log(path, consumer, stop_event, poll_interval=0.25):
    """Pass every new line of ``path`` to ``consumer``. Returns the number forwarded."""
    count = 0
    for line in follow(path, stop_event, poll_interval):
        consumer(line)
        count += 1
    logger.debug(f"Stopped streaming {path} after {count} lines")
    return count
