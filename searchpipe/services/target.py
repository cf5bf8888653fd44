from urllib.parse import urlsplit

from searchpipe.exceptions import InvalidTarget
from searchpipe.models import ClusterTarget

ALL_INDICES = "_all"


def parse_cluster(uri: str) -> ClusterTarget:
    """
    Resolve a cluster URI into a host and an optional fixed index.

    Only the scheme and host are checked, nothing is contacted. The index is
    taken from the path with slashes trimmed; an empty path leaves it unset
    so each command can apply its own fallback.

    Examples:
       - "http://host:9200/myindex" -> host="http://host:9200", index="myindex"
       - "http://host:9200/"        -> host="http://host:9200", index=None
    """
    try:
        parts = urlsplit(uri.strip())
        hostname = parts.hostname
    except ValueError as e:
        raise InvalidTarget(uri, str(e)) from e

    if parts.scheme not in ("http", "https"):
        raise InvalidTarget(uri, "scheme must be http or https")
    if not hostname:
        raise InvalidTarget(uri, "no host provided")

    index = parts.path.strip("/").strip()
    return ClusterTarget(host=f"{parts.scheme}://{parts.netloc}", index=index or None)


def index_or_all(target: ClusterTarget) -> str:
    """Fixed index of the target, or every index when none was given."""
    return target.index or ALL_INDICES
