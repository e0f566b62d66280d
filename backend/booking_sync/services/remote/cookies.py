"""Cookie jar kept as a plain "name=value; name2=value2" header string so it persists as one text column."""
import httpx


def parse_cookie_jar(jar: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for part in (jar or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            out[name.strip()] = value.strip()
    return out


def format_cookie_jar(cookies: dict[str, str]) -> str:
    return "; ".join(f"{k}={v}" for k, v in cookies.items())


def merge_set_cookies(jar: str, response: httpx.Response) -> str:
    """Fold the response's Set-Cookie headers into jar. A cookie set to an empty value is dropped."""
    cookies = parse_cookie_jar(jar)
    for header in response.headers.get_list("set-cookie"):
        first = header.split(";", 1)[0]
        name, sep, value = first.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        value = value.strip()
        if value:
            cookies[name] = value
        else:
            cookies.pop(name, None)
    return format_cookie_jar(cookies)
