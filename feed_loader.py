# feed_loader.py — fetch the results / signals text feeds over HTTP and parse them
from __future__ import annotations

from typing import List, Optional

import httpx

from feed_parser import OutcomeRecord, SignalsFeed, parse, parse_signals

DEFAULT_TIMEOUT = 10.0


class FeedFetchError(RuntimeError):
    pass


def fetch_feed_text(
    url: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """GET a text feed. Raises FeedFetchError on network failure or non-2xx."""
    if not url:
        raise FeedFetchError("Feed URL is not configured.")

    own_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        resp = client.get(url)
        resp.raise_for_status()
        # feeds are UTF-8 text files; servers often omit the charset
        return resp.content.decode("utf-8", errors="replace")
    except httpx.HTTPStatusError as e:
        print(f"[feed_loader] {url} -> HTTP {e.response.status_code}")
        raise FeedFetchError(f"Feed {url} returned HTTP {e.response.status_code}.") from e
    except httpx.HTTPError as e:
        print(f"[feed_loader] fetch error {url}: {e!r}")
        raise FeedFetchError(f"Could not fetch feed {url}: {e}") from e
    finally:
        if own_client:
            client.close()


def load_outcomes(url: str, client: Optional[httpx.Client] = None) -> List[OutcomeRecord]:
    return parse(fetch_feed_text(url, client=client))


def load_signals(url: str, client: Optional[httpx.Client] = None) -> SignalsFeed:
    return parse_signals(fetch_feed_text(url, client=client))
