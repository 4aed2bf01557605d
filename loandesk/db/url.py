from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def normalize_database_url(url: str) -> str:
    """Coerce hosted-Postgres URLs into the asyncpg dialect.

    ``postgres://`` and bare ``postgresql://`` schemes are mapped to
    ``postgresql+asyncpg``. asyncpg rejects libpq's ``sslmode`` parameter, so
    it is translated to ``ssl``.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+asyncpg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    if scheme == "postgresql+asyncpg":
        sslmode = query.pop("sslmode", None)
        if sslmode is not None and "ssl" not in query:
            query["ssl"] = "disable" if sslmode.lower() == "disable" else sslmode.lower()

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
