from __future__ import annotations

import sys

from extractors.runtime import get_runtime_info


def test_runtime_info_reports_cookie_jar_state(tmp_path) -> None:
    jar = tmp_path / "cookies.txt"

    assert get_runtime_info(cookies_path=jar)["yt_dlp_cookies"] == "missing"

    jar.write_text("# Netscape HTTP Cookie File\n", encoding="utf-8")
    assert get_runtime_info(cookies_path=jar)["yt_dlp_cookies"] == "present"


def test_runtime_info_resolves_binary_on_path(tmp_path) -> None:
    info = get_runtime_info(cookies_path=tmp_path / "cookies.txt", binary=sys.executable)

    assert info["yt_dlp_binary"] is not None
    assert info["python_version"] == sys.version.split()[0]
    assert get_runtime_info(binary=str(tmp_path / "no-such-yt-dlp"))["yt_dlp_binary"] is None
