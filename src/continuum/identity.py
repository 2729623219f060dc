"""Resolution of database locations into cluster identities.

A location given on the command line is either a full URL
(``http://host:5984/db``) or a bare database name. It is parsed once into a
tagged value and resolved against the cluster URL when the engine is built.
"""

from dataclasses import dataclass
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from continuum.exceptions import ConfigurationError

REPLICA_PREFIX = "temp_copy_"

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class RemoteLocation:
    """A database addressed by full URL."""

    base_url: str
    name: str


@dataclass(frozen=True)
class LocalName:
    """A bare database name that still needs a cluster URL."""

    name: str


Location = RemoteLocation | LocalName


@dataclass(frozen=True)
class DatabaseIdentity:
    """A database on a specific cluster."""

    base_url: str
    name: str

    @property
    def url(self) -> str:
        """Full URL of the database, with the name percent-encoded."""
        return f"{self.base_url}/{quote(self.name, safe='')}"

    @property
    def display(self) -> str:
        """URL safe for logs and terminal output."""
        return redact_url(self.url)

    @property
    def port(self) -> int | None:
        return urlsplit(self.base_url).port

    @property
    def key(self) -> tuple[str, str, int | None, str, str]:
        """What makes two identities the same database.

        Credentials, host case and an explicit default port do not change
        which database a URL names.
        """
        split = urlsplit(self.base_url)
        scheme = split.scheme.lower()
        return (
            scheme,
            (split.hostname or "").lower(),
            split.port or _DEFAULT_PORTS.get(scheme),
            unquote(split.path.rstrip("/")),
            self.name,
        )

    def __str__(self) -> str:
        return self.display


def redact_url(url: str) -> str:
    """Mask the password in a URL's userinfo, if any."""
    split = urlsplit(url)
    if split.password is None:
        return url
    host = split.hostname or ""
    if split.port is not None:
        host = f"{host}:{split.port}"
    netloc = f"{split.username}:*****@{host}"
    return urlunsplit((split.scheme, netloc, split.path, split.query, split.fragment))


def parse_location(value: str) -> Location:
    """Parse a database location.

    Args:
        value: A full database URL or a bare database name

    Returns:
        RemoteLocation for URLs, LocalName otherwise

    Raises:
        ConfigurationError: If the value is empty or a URL names no database
    """
    if not value:
        raise ConfigurationError("A database name or URL is required.")

    split = urlsplit(value)
    if split.scheme in ("http", "https") and split.netloc:
        base_path, _, last = split.path.rstrip("/").rpartition("/")
        if not last:
            raise ConfigurationError(f"No database name in URL {redact_url(value)}")
        base_url = urlunsplit((split.scheme, split.netloc, base_path, "", ""))
        return RemoteLocation(base_url=base_url, name=unquote(last))

    return LocalName(name=value)


def resolve_identity(location: Location, couch_url: str | None) -> DatabaseIdentity:
    """Turn a parsed location into an identity.

    Raises:
        ConfigurationError: If a bare name is given without a cluster URL
    """
    if isinstance(location, RemoteLocation):
        return DatabaseIdentity(base_url=location.base_url, name=location.name)
    if not couch_url:
        raise ConfigurationError("The Continuum requires a URL for accessing CouchDB.")
    return DatabaseIdentity(base_url=couch_url.rstrip("/"), name=location.name)


def replica_identity(source: DatabaseIdentity) -> DatabaseIdentity:
    """Default replica for a primary: ``temp_copy_<name>`` on the same cluster."""
    return DatabaseIdentity(base_url=source.base_url, name=f"{REPLICA_PREFIX}{source.name}")
