from urllib.parse import urlsplit

UNKNOWN_PLATFORM = "unknown"

# точные совпадения хоста
KNOWN_HOSTS = {
    "youtube.com": "youtube",
    "www.youtube.com": "youtube",
    "m.youtube.com": "youtube",
    "youtu.be": "youtube",
    "twitter.com": "twitter",
    "www.twitter.com": "twitter",
    "x.com": "twitter",
    "instagram.com": "instagram",
    "www.instagram.com": "instagram",
    "tiktok.com": "tiktok",
    "www.tiktok.com": "tiktok",
    "github.com": "github",
    "vimeo.com": "vimeo",
}


def extract_host(url: str) -> str:
    """Хост ссылки; ссылки без схемы считаются https"""
    if not url or not url.strip():
        return ""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return ""
    return host or ""


def classify_platform(url: str) -> str:
    """Платформа по хосту ссылки; для незнакомых хостов — сам хост"""
    host = extract_host(url)
    if not host:
        return UNKNOWN_PLATFORM
    return KNOWN_HOSTS.get(host, host)
