import ipaddress
import json
import logging
import re
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from hirescore.config import (
    JOB_BLOCKED_HOSTNAMES,
    JOB_FETCH_MAX_BYTES,
    JOB_FETCH_TIMEOUT,
    JOB_FETCH_USER_AGENT,
    JOB_MAX_CONTENT_LENGTH,
    JOB_MIN_CONTENT_LENGTH,
)
from hirescore.cv.extractor import HIDDEN_TAGS, clean_whitespace, decode_text, html_to_text

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
ACCEPTED_CONTENT_TYPES = ("text/html", "application/xhtml", "application/json", "text/plain")

# Page chrome removed before falling back to plain page text
CHROME_TAGS = frozenset({"nav", "header", "footer", "aside", "form"})

_JSON_LD_TYPE_RE = re.compile(r"ld\+json", re.IGNORECASE)


class JobFetchError(Exception):
    """Raised when a job description cannot be fetched from a URL."""

    pass


def check_url(url: str) -> str:
    """Validate a job posting URL before any request is made.

    Args:
        url: URL supplied by the user.

    Returns:
        The stripped URL.

    Raises:
        JobFetchError: If the scheme is not http(s), the host is missing or
            the host is a local, private or link-local address.
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise JobFetchError("Only http and https URLs are allowed")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise JobFetchError(f"URL has no host: {url}")
    if hostname in JOB_BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        raise JobFetchError(f"Refusing to fetch internal host: {hostname}")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return url

    if (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    ):
        raise JobFetchError(f"Refusing to fetch internal address: {hostname}")
    return url


def _job_postings(data) -> list[dict]:
    items = data if isinstance(data, list) else [data]
    postings = []
    for item in items:
        if not isinstance(item, dict):
            continue
        types = item.get("@type")
        if types == "JobPosting" or (isinstance(types, list) and "JobPosting" in types):
            postings.append(item)
        graph = item.get("@graph")
        if isinstance(graph, list):
            postings.extend(_job_postings(graph))
    return postings


def _location_text(job_location) -> str | None:
    if isinstance(job_location, list):
        job_location = job_location[0] if job_location else None
    if not isinstance(job_location, dict):
        return None
    address = job_location.get("address")
    if isinstance(address, str):
        return address
    if not isinstance(address, dict):
        return None

    parts = [address.get("addressLocality"), address.get("addressRegion")]
    country = address.get("addressCountry")
    if isinstance(country, dict):
        country = country.get("name")
    parts.append(country)
    parts = [str(p) for p in parts if p]
    return ", ".join(parts) or None


def format_job_posting(posting: dict) -> str:
    """Render a schema.org JobPosting as plain text.

    Returns:
        Formatted text, or an empty string when the posting has nothing
        beyond a title.
    """
    parts = []
    if posting.get("title"):
        parts.append(f"JOB TITLE: {clean_whitespace(str(posting['title']))}")

    organization = posting.get("hiringOrganization")
    if isinstance(organization, dict) and organization.get("name"):
        parts.append(f"COMPANY: {clean_whitespace(str(organization['name']))}")

    location = _location_text(posting.get("jobLocation"))
    if location:
        parts.append(f"LOCATION: {location}")

    employment_type = posting.get("employmentType")
    if employment_type:
        if isinstance(employment_type, list):
            employment_type = ", ".join(str(t) for t in employment_type)
        parts.append(f"EMPLOYMENT TYPE: {employment_type}")

    description = html_to_text(str(posting.get("description") or ""))
    if len(description) > 50:
        parts.append(f"\nJOB DESCRIPTION:\n{description}")

    requirements = [
        str(posting[key])
        for key in ("qualifications", "skills", "experienceRequirements")
        if posting.get(key) and not isinstance(posting[key], dict)
    ]
    if requirements:
        parts.append(f"\nREQUIREMENTS:\n{html_to_text(chr(10).join(requirements))}")

    return "\n".join(parts) if len(parts) > 1 else ""


def first_job_posting(data) -> str | None:
    for posting in _job_postings(data):
        text = format_job_posting(posting)
        if text:
            return text
    return None


def extract_job_posting(markup: str) -> str | None:
    """Find the first JSON-LD JobPosting in a page and format it."""
    soup = BeautifulSoup(markup, "html.parser")
    for script in soup.find_all("script", attrs={"type": _JSON_LD_TYPE_RE}):
        block = script.string or script.get_text()
        try:
            data = json.loads(block.strip())
        except json.JSONDecodeError:
            continue
        text = first_job_posting(data)
        if text:
            return text
    return None


def page_text(markup: str) -> str:
    """Readable page text with scripts, styles and navigation removed."""
    return html_to_text(markup, drop=HIDDEN_TAGS | CHROME_TAGS)


def _download(url: str) -> tuple[str, str]:
    headers = {"User-Agent": JOB_FETCH_USER_AGENT, "Accept": "text/html,application/xhtml+xml"}
    try:
        response = requests.get(url, headers=headers, timeout=JOB_FETCH_TIMEOUT, stream=True)
    except requests.exceptions.RequestException as e:
        raise JobFetchError(f"Failed to fetch URL: {e}") from e

    try:
        if response.status_code == 404:
            raise JobFetchError("Job posting not found - it may have been removed or expired")
        if response.status_code >= 400:
            raise JobFetchError(f"Failed to fetch URL: HTTP {response.status_code}")

        raw_content_type = response.headers.get("Content-Type", "")
        content_type = raw_content_type.split(";")[0].strip().lower()
        if content_type and not content_type.startswith(ACCEPTED_CONTENT_TYPES):
            raise JobFetchError(f"URL did not return an HTML page ({content_type})")

        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > JOB_FETCH_MAX_BYTES:
            raise JobFetchError("Response too large")

        body = bytearray()
        for chunk in response.iter_content(chunk_size=64 * 1024):
            body.extend(chunk)
            if len(body) > JOB_FETCH_MAX_BYTES:
                raise JobFetchError("Response too large")
    except requests.exceptions.RequestException as e:
        raise JobFetchError(f"Failed to fetch URL: {e}") from e
    finally:
        response.close()

    # requests assumes ISO-8859-1 for text/* without a declared charset
    if "charset=" in raw_content_type.lower() and response.encoding:
        try:
            return bytes(body).decode(response.encoding, errors="replace"), content_type
        except LookupError:
            logger.warning(f"Unknown charset {response.encoding!r}, guessing encoding")
    return decode_text(bytes(body)), content_type


def fetch_job_description(url: str) -> str:
    """Fetch a job posting page and return its description as text.

    A schema.org ``JobPosting`` JSON-LD block is preferred; otherwise the
    readable page text is used.

    Args:
        url: Public http(s) URL of the job posting.

    Returns:
        Job description text, truncated to a bounded length.

    Raises:
        JobFetchError: If the URL is refused, the request fails or no
            description could be found on the page.
    """
    url = check_url(url)
    logger.info(f"Fetching job description from {url}")
    body, content_type = _download(url)

    if content_type == "text/plain":
        content = clean_whitespace(body)
    elif content_type == "application/json":
        try:
            content = first_job_posting(json.loads(body)) or clean_whitespace(body)
        except json.JSONDecodeError:
            content = clean_whitespace(body)
    else:
        content = extract_job_posting(body)
        if content:
            logger.info("Using JSON-LD JobPosting block")
        else:
            content = page_text(body)

    if len(content) < JOB_MIN_CONTENT_LENGTH:
        raise JobFetchError(
            "Could not extract a job description from this URL. "
            "The page may be dynamically loaded; paste the job description instead."
        )

    if len(content) > JOB_MAX_CONTENT_LENGTH:
        content = content[:JOB_MAX_CONTENT_LENGTH] + "\n\n[Content truncated...]"

    logger.info(f"Fetched job description ({len(content)} chars)")
    return content
