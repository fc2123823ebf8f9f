"""
URL Utilities for Media Scanner

Helpers for recognizing media locations, resolving and normalizing them,
and deriving the identity and grouping keys used by the index.
"""

import hashlib
import json
import re
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

import tldextract

IMAGE_EXTENSIONS = frozenset({
    'jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'avif', 'bmp', 'tiff', 'ico'
})
VIDEO_EXTENSIONS = frozenset({
    'mp4', 'webm', 'mov', 'avi', 'mkv', 'flv', 'wmv', 'm4v'
})
DOCUMENT_EXTENSIONS = frozenset({
    'pdf', 'doc', 'docx', 'txt', 'rtf'
})
AUDIO_EXTENSIONS = frozenset({
    'mp3', 'wav', 'ogg', 'aac', 'flac', 'm4a'
})
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS | DOCUMENT_EXTENSIONS | AUDIO_EXTENSIONS

LOOPBACK_HOSTS = frozenset({'localhost', '127.0.0.1', '::1', '0.0.0.0'})

# CMS media buses serve the same asset under content-addressed names
HASH_NAMED_ASSET = re.compile(r'^media_[0-9a-f]{8,}\.[a-z0-9]+$', re.IGNORECASE)

_EXTENSION_PATTERN = re.compile(r'^[a-z0-9]+$')
_QUERY_SPLIT = re.compile(r'[?#]')

# Offline extractor, uses the bundled public suffix snapshot
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())


def strip_query(location: str) -> str:
    """Remove query string and fragment"""
    return _QUERY_SPLIT.split(location, 1)[0]


def get_file_extension(location: str) -> str:
    """
    Lower-cased extension of a location, or '' when there is none.

    Only the text after the last '.' of the query-less location counts,
    and it must be purely alphanumeric (so 'example.com/page' has none).
    """
    if not location:
        return ''
    path = strip_query(location)
    if '.' not in path:
        return ''
    extension = path.rsplit('.', 1)[1].lower()
    if not _EXTENSION_PATTERN.match(extension):
        return ''
    return extension


def get_filename(location: str) -> str:
    """Last path segment with query string and fragment removed"""
    path = strip_query(location or '').rstrip('/')
    return path.rsplit('/', 1)[-1]


def is_media_file(location: Optional[str]) -> bool:
    """Check whether a location points to a recognized media file"""
    if not location or not location.strip():
        return False
    return get_file_extension(location.strip()) in MEDIA_EXTENSIONS


def resolve_url(src: str, base: str) -> str:
    """
    Resolve a possibly relative reference against the page location.

    Absolute http(s) and data: references pass through unchanged.
    """
    src = src.strip()
    lowered = src.lower()
    if lowered.startswith(('http://', 'https://', 'data:')):
        return src
    return urljoin(base, src)


def is_loopback_host(host: Optional[str]) -> bool:
    return (host or '').lower().strip('[]') in LOOPBACK_HOSTS


def fix_localhost_url(url: str, page_location: str) -> str:
    """
    Rewrite loopback asset URLs to the page's scheme and host.

    CMS previews often leak development-host references into published
    markup. Path and query are preserved; pages that are themselves
    served from a loopback host are left alone.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not is_loopback_host(parsed.hostname):
        return url

    page = urlparse(page_location)
    if not page.netloc or is_loopback_host(page.hostname):
        return url

    return urlunparse((page.scheme or 'https', page.netloc, parsed.path,
                       parsed.params, parsed.query, parsed.fragment))


def content_hash(url: str, alt_text: Optional[str], source_document: str) -> str:
    """
    Identity digest of a media occurrence.

    The triple is JSON-encoded before hashing so that a missing alt text
    (null) and an empty one ("") yield different digests.
    """
    payload = json.dumps([url, alt_text, source_document], ensure_ascii=False)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]


def grouping_key(url: str) -> str:
    """
    Key shared by every occurrence of the same underlying asset.

    Content-addressed names group by filename alone; everything else
    groups by lower-cased host plus path, ignoring query and fragment.
    """
    base = strip_query(url)
    filename = get_filename(base)
    if HASH_NAMED_ASSET.match(filename):
        return filename.lower()

    parsed = urlparse(base)
    if parsed.netloc:
        return f"{parsed.netloc.lower()}{parsed.path}"
    return base


def folder_of(url: str) -> str:
    """Directory part of a URL path, with trailing slash"""
    path = urlparse(strip_query(url)).path
    if '/' not in path:
        return '/'
    return path.rsplit('/', 1)[0] + '/'


def get_site_key(location: str) -> str:
    """
    Derive a site key (registered domain) from a page or sitemap URL

    Args:
        location: Any URL on the site

    Returns:
        Registered domain such as 'example.co.uk', or the host when it
        has no public suffix (e.g. 'localhost')
    """
    parsed = urlparse(location)
    host = (parsed.hostname or '').lower()
    extracted = _tld_extract(location)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return host
