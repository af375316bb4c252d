import pytest

from services.analytics.user_agents import classify_browser, classify_device

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_DESKTOP_MODE = "Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X) Safari/604.1"
IPAD_MOBILE = (
    "Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
)
WINDOWS_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
WINDOWS_EDGE = WINDOWS_CHROME + " Edg/120.0.2210.61"
LEGACY_EDGE = "Mozilla/5.0 (Windows NT 10.0) Edge/18.19045"
FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        (IPHONE, "mobile"),
        (IPAD_DESKTOP_MODE, "tablet"),
        # "Mobile" is checked before the tablet patterns
        (IPAD_MOBILE, "mobile"),
        ("Mozilla/5.0 (Linux; Android 14; Pixel Tablet)", "mobile"),
        (WINDOWS_CHROME, "desktop"),
        ("", "desktop"),
        (None, "desktop"),
    ],
)
def test_classify_device_priority(user_agent, expected):
    assert classify_device(user_agent) == expected


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        (WINDOWS_CHROME, "chrome"),
        (WINDOWS_EDGE, "chrome"),
        (FIREFOX, "firefox"),
        (IPHONE, "safari"),
        (LEGACY_EDGE, "edge"),
        ("curl/8.4.0", "other"),
        (None, "other"),
    ],
)
def test_classify_browser_priority(user_agent, expected):
    assert classify_browser(user_agent) == expected
