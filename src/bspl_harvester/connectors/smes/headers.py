"""Browser-like request headers for the SMES portal.

The portal rejects captcha requests that do not look like they come from its
own company search page.
"""

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)

SEARCH_PAGE_PATH = "/venturein/pbntc/searchVntrCmp"


def captcha_headers(base_url: str) -> dict:
    """Headers sent with a captcha image request."""
    return {
        "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9,ko-KR;q=0.8,ko;q=0.7",
        "Pragma": "no-cache",
        "Referer": f"{base_url}{SEARCH_PAGE_PATH}",
        "Sec-Fetch-Dest": "image",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "same-origin",
        "User-Agent": USER_AGENT,
    }


def page_headers(base_url: str, cookie_header: str) -> dict:
    """Headers sent with an entity page request for one captcha session."""
    return {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9,ko-KR;q=0.8,ko;q=0.7",
        "Cookie": cookie_header,
        "Origin": base_url,
        "Referer": f"{base_url}{SEARCH_PAGE_PATH}",
        "User-Agent": USER_AGENT,
    }
