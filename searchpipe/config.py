import os

from dotenv import load_dotenv
from opensearchpy import OpenSearch

from searchpipe.models import ClusterTarget

load_dotenv()


class Config:
    """Runtime configuration loaded from environment variables."""

    TIMEOUT: int = int(os.getenv("SEARCHPIPE_TIMEOUT", "30"))
    SCROLL_TTL: str = os.getenv("SEARCHPIPE_SCROLL_TTL", "1m")
    DEFAULT_SIZE: int = int(os.getenv("SEARCHPIPE_DEFAULT_SIZE", "100"))
    DEFAULT_CONCURRENCY: int = int(os.getenv("SEARCHPIPE_DEFAULT_CONCURRENCY", "1"))


def get_opensearch_client(target: ClusterTarget) -> OpenSearch:
    """
    Create an OpenSearch client for the host of a resolved target.

    The client is shared read-only by every worker thread of a run.

    Args:
        target: Resolved cluster target

    Returns:
        OpenSearch: Configured OpenSearch client
    """
    config = Config()

    return OpenSearch(
        hosts=[target.host],
        use_ssl=target.host.startswith("https://"),
        ssl_show_warn=False,
        timeout=config.TIMEOUT,
    )
