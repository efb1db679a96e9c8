"""
HTML pages for the script-free speed test.

Pages chain themselves together with ``<meta http-equiv="refresh">`` so the
test runs in browsers without JavaScript.  Every interpolated value goes
through ``html.escape``.
"""
from __future__ import annotations

from html import escape
from urllib.parse import urlencode

from server.constants import RESULTS_REFRESH_DELAY
from server.resolver import Summary
from server.stats import format_latency, format_rate

_TITLE = "tiny-speedtest"


def _page(body: str, title: str = _TITLE, refresh: str = "") -> str:
    meta = ""
    if refresh:
        meta = f'<meta http-equiv="refresh" content="{escape(refresh)}">'
    return (
        "<!doctype html><html><head>"
        '<meta charset="utf-8">'
        f"<title>{escape(title)}</title>{meta}"
        f"</head><body>{body}</body></html>"
    )


def url_for(path: str, **params: object) -> str:
    return f"{path}?{urlencode(params)}" if params else path


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def render_index(client_host: str, download_size: int) -> str:
    return _page(
        f"<h2>{_TITLE} (no JS)</h2>"
        '<form method="POST" action="/start">'
        f'<input type="hidden" name="ip" value="{escape(client_host)}">'
        "<button>Start test</button></form>"
        f"<p>Download test default: {download_size / (1024 * 1024):.0f} MiB. "
        "If the download doesn't start automatically, use the link on the next page.</p>"
    )


def render_start(session_id: str) -> str:
    first_probe = url_for("/probe", sid=session_id, n=1)
    return _page("<p>Starting&hellip;</p>", refresh=f"0;url={first_probe}")


def render_probe(session_id: str, n: int, next_n: int) -> str:
    next_probe = url_for("/probe", sid=session_id, n=next_n)
    return _page(f"<p>ping {n}</p>", refresh=f"0;url={next_probe}")


def render_download(session_id: str, size: int, nonce: str) -> str:
    """Final probe page: fetch the payload, then move on to the results."""
    download = escape(url_for("/download", sid=session_id, size=size, nonce=nonce))
    results = url_for("/results", sid=session_id)
    return _page(
        "<h3>Starting download test</h3>"
        "<p>If the download does not start automatically, click the link below.</p>"
        f'<p><a href="{download}">Click here to download test file</a></p>'
        f'<iframe src="{download}" style="display:none"></iframe>'
        "<p>Results will appear once the server records the download "
        "(or after a short timeout).</p>",
        title="download",
        refresh=f"{RESULTS_REFRESH_DELAY};url={results}",
    )


def render_results(summary: Summary) -> str:
    rows = [
        ("Client host", summary.client_host or "unknown"),
        ("Ping avg", format_latency(summary.avg_latency_ms)),
        ("Jitter", format_latency(summary.jitter_ms)),
        ("Samples", str(summary.sample_count)),
        ("Download", format_rate(summary.download_rate)),
        ("Upload", format_rate(summary.upload_rate)),
    ]
    table = "".join(
        f"<tr><td>{escape(label)}</td><td>{escape(value)}</td></tr>" for label, value in rows
    )
    note = ""
    if summary.timed_out:
        note = "<p>The download was not recorded in time; figures may be incomplete.</p>"
    sid = escape(summary.session_id)
    return _page(
        f"<h3>Results</h3><table>{table}</table>{note}<hr>"
        '<form method="POST" action="/upload" enctype="multipart/form-data">'
        f'<input type="hidden" name="sid" value="{sid}">'
        'Upload file for upload-speed test: <input type="file" name="f">'
        "<button>Upload</button></form>"
        '<p><a href="/">Run again</a></p>',
        title="results",
    )
