"""Tests for user-agent classification."""

import pytest
from tinylink_shared import DeviceType

from tinylink_api.services.user_agent import classify_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = f"{CHROME_WINDOWS} Edg/120.0.2210.91"
OPERA_WINDOWS = f"{CHROME_WINDOWS} OPR/106.0.0.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.144 Mobile Safari/537.36"
)
CHROME_ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X900) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.144 Safari/537.36"
)
FIREFOX_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0"
)
IE11_WINDOWS7 = "Mozilla/5.0 (Windows NT 6.1; Trident/7.0; rv:11.0) like Gecko"
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
GOOGLEBOT_SMARTPHONE = (
    "Mozilla/5.0 (Linux; Android 6.0.1; Nexus 5X Build/MMB29P) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.71 Mobile Safari/537.36 "
    "(compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)
BINGBOT = "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)"


@pytest.mark.parametrize(
    ("user_agent", "browser", "os", "device_type"),
    [
        (CHROME_WINDOWS, "Chrome 120.0", "Windows 10", DeviceType.DESKTOP),
        (EDGE_WINDOWS, "Edge 120.0", "Windows 10", DeviceType.DESKTOP),
        (OPERA_WINDOWS, "Opera 106.0", "Windows 10", DeviceType.DESKTOP),
        (SAFARI_IPHONE, "Safari 17.2", "iOS (iPhone)", DeviceType.MOBILE),
        (SAFARI_IPAD, "Safari 17.2", "iOS (iPad)", DeviceType.TABLET),
        (CHROME_ANDROID_PHONE, "Chrome 120.0", "Android 14", DeviceType.MOBILE),
        (CHROME_ANDROID_TABLET, "Chrome 120.0", "Android 13", DeviceType.TABLET),
        (FIREFOX_MAC, "Firefox 121.0", "macOS 10.15", DeviceType.DESKTOP),
        (IE11_WINDOWS7, "IE 11", "Windows 7", DeviceType.DESKTOP),
    ],
)
def test_classify_user_agent(user_agent, browser, os, device_type):
    info = classify_user_agent(user_agent)

    assert info.browser == browser
    assert info.os == os
    assert info.device_type is device_type


@pytest.mark.parametrize(
    ("user_agent", "os"),
    [
        (GOOGLEBOT, "Unknown"),
        (GOOGLEBOT_SMARTPHONE, "Android 6.0"),
        (BINGBOT, "Unknown"),
        ("Mozilla/5.0 (compatible; ExampleSpider/1.0)", "Unknown"),
    ],
)
def test_bots_are_flagged(user_agent, os):
    info = classify_user_agent(user_agent)

    assert info.browser == "Bot"
    assert info.os == os
    assert info.device_type is DeviceType.BOT


@pytest.mark.parametrize("user_agent", [None, "", "   "])
def test_missing_user_agent_is_unknown(user_agent):
    info = classify_user_agent(user_agent)

    assert (info.browser, info.os, info.device_type) == ("Unknown", "Unknown", DeviceType.UNKNOWN)
