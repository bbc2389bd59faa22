import shutil
import sys

from yt_dlp.version import __version__ as ytdlp_version

from config.settings import APP_VERSION, YTDLP_BINARY, YTDLP_COOKIES_PATH


def get_runtime_info(cookies_path=YTDLP_COOKIES_PATH, binary=YTDLP_BINARY):
    """Describe what the yt-dlp fallback would run with right now.

    ``yt_dlp_binary`` is the resolved executable (``None`` when it is not on
    PATH, in which case every fallback call fails). ``yt_dlp_cookies`` tells
    whether the cookie jar exists, since it is picked up per invocation.
    """
    return {
        "app_version": APP_VERSION,
        "python_version": sys.version.split()[0],
        "yt_dlp_version": ytdlp_version,
        "yt_dlp_binary": shutil.which(binary),
        "yt_dlp_cookies": "present" if cookies_path.is_file() else "missing",
    }
